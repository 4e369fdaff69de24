# python imports:
import logging
from typing import Optional as Opt

# sieve_proto imports:
from event_handling import AsyncClient
import sieve_proto as proto
import sieve_sasl

logger = logging.getLogger ( __name__ )


class Client ( AsyncClient ):
	protocls = proto.Client

	async def greeting ( self ) -> proto.CapabilityResponse:
		return await self._request ( proto.GreetingRequest() )

	async def capability ( self ) -> proto.CapabilityResponse:
		return await self._request ( proto.CapabilityRequest() )

	async def starttls ( self ) -> proto.Response:
		# returns the CapabilityResponse the server sends over the new channel if it worked
		return await self._request ( proto.StartTlsRequest() )

	async def authenticate ( self, authenticator: sieve_sasl.Authenticator ) -> proto.Response:
		return await self._request ( proto.AuthenticateRequest ( authenticator ) )

	async def login ( self, uid: str, pwd: str ) -> proto.Response:
		log = logger.getChild ( 'Client.login' )
		if self.proto.capabilities is None:
			# nothing read yet, the capabilities arrive with the greeting
			await self.greeting()
		assert self.proto.capabilities is not None
		offered = self.proto.capabilities.sasl
		authenticator = sieve_sasl.create_authenticator ( offered, uid, pwd )
		if authenticator is None:
			raise proto.AuthenticationError (
				f'no usable SASL mechanism: server offers {list(offered)!r}'
				f', we support {list(sieve_sasl.mechanisms())!r}'
			)
		log.debug ( f'using {authenticator.mechanism_name()}' )
		return await self.authenticate ( authenticator )

	async def listscripts ( self ) -> proto.ListScriptsResponse:
		return await self._request ( proto.ListScriptsRequest() )

	async def havespace ( self, name: str, size: int ) -> proto.Response:
		return await self._request ( proto.HaveSpaceRequest ( name, size ) )

	async def putscript ( self, name: str, body: str ) -> proto.Response:
		return await self._request ( proto.PutScriptRequest ( name, body ) )

	async def getscript ( self, name: str ) -> proto.GetScriptResponse:
		return await self._request ( proto.GetScriptRequest ( name ) )

	async def deletescript ( self, name: str ) -> proto.Response:
		return await self._request ( proto.DeleteScriptRequest ( name ) )

	async def setactive ( self, name: str ) -> proto.Response:
		return await self._request ( proto.SetActiveRequest ( name ) )

	async def renamescript ( self, old_name: str, new_name: str ) -> proto.Response:
		return await self._request ( proto.RenameScriptRequest ( old_name, new_name ) )

	async def checkscript ( self, body: str ) -> proto.Response:
		return await self._request ( proto.CheckScriptRequest ( body ) )

	async def noop ( self, tag: Opt[str] = None ) -> proto.Response:
		return await self._request ( proto.NoOpRequest ( tag ) )

	async def logout ( self ) -> proto.Response:
		return await self._request ( proto.LogoutRequest() )

	async def on_StartTlsBeginEvent ( self, event: proto.StartTlsBeginEvent ) -> None:
		await self._starttls()
