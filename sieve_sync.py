# python imports:
import logging
from typing import Optional as Opt

# sieve_proto imports:
from event_handling import SyncClient
import sieve_proto as proto
import sieve_sasl

logger = logging.getLogger ( __name__ )


class Client ( SyncClient ):
	protocls = proto.Client

	def greeting ( self ) -> proto.CapabilityResponse:
		return self._request ( proto.GreetingRequest() )

	def capability ( self ) -> proto.CapabilityResponse:
		return self._request ( proto.CapabilityRequest() )

	def starttls ( self ) -> proto.Response:
		# returns the CapabilityResponse the server sends over the new channel if it worked
		return self._request ( proto.StartTlsRequest() )

	def authenticate ( self, authenticator: sieve_sasl.Authenticator ) -> proto.Response:
		return self._request ( proto.AuthenticateRequest ( authenticator ) )

	def login ( self, uid: str, pwd: str ) -> proto.Response:
		log = logger.getChild ( 'Client.login' )
		if self.proto.capabilities is None:
			# nothing read yet, the capabilities arrive with the greeting
			self.greeting()
		assert self.proto.capabilities is not None
		offered = self.proto.capabilities.sasl
		authenticator = sieve_sasl.create_authenticator ( offered, uid, pwd )
		if authenticator is None:
			raise proto.AuthenticationError (
				f'no usable SASL mechanism: server offers {list(offered)!r}'
				f', we support {list(sieve_sasl.mechanisms())!r}'
			)
		log.debug ( f'using {authenticator.mechanism_name()}' )
		return self.authenticate ( authenticator )

	def listscripts ( self ) -> proto.ListScriptsResponse:
		return self._request ( proto.ListScriptsRequest() )

	def havespace ( self, name: str, size: int ) -> proto.Response:
		return self._request ( proto.HaveSpaceRequest ( name, size ) )

	def putscript ( self, name: str, body: str ) -> proto.Response:
		return self._request ( proto.PutScriptRequest ( name, body ) )

	def getscript ( self, name: str ) -> proto.GetScriptResponse:
		return self._request ( proto.GetScriptRequest ( name ) )

	def deletescript ( self, name: str ) -> proto.Response:
		return self._request ( proto.DeleteScriptRequest ( name ) )

	def setactive ( self, name: str ) -> proto.Response:
		return self._request ( proto.SetActiveRequest ( name ) )

	def renamescript ( self, old_name: str, new_name: str ) -> proto.Response:
		return self._request ( proto.RenameScriptRequest ( old_name, new_name ) )

	def checkscript ( self, body: str ) -> proto.Response:
		return self._request ( proto.CheckScriptRequest ( body ) )

	def noop ( self, tag: Opt[str] = None ) -> proto.Response:
		return self._request ( proto.NoOpRequest ( tag ) )

	def logout ( self ) -> proto.Response:
		return self._request ( proto.LogoutRequest() )

	def on_StartTlsBeginEvent ( self, event: proto.StartTlsBeginEvent ) -> None:
		self._starttls()
