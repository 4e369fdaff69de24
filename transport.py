# python imports:
from abc import ABCMeta, abstractmethod
import logging
import ssl
from typing import Any, List, Optional as Opt, Union

# sieve_proto imports:
from util import BYTES, bytes_types

logger = logging.getLogger ( __name__ )


def peer_chain ( sslobj: Union[ssl.SSLSocket,ssl.SSLObject,Any] ) -> List[bytes]:
	'''
	DER encoded certificates presented by the peer, leaf first.

	python 3.13+ can give us the whole chain, older versions only the leaf
	'''
	chain: List[bytes] = []
	get_chain = getattr ( sslobj, 'get_unverified_chain', None )
	if get_chain is not None:
		chain = [ bytes ( der ) for der in ( get_chain() or [] ) if isinstance ( der, bytes_types ) ]
	if not chain:
		leaf = sslobj.getpeercert ( binary_form = True )
		if leaf:
			chain.append ( leaf )
	return chain


class Transport ( metaclass = ABCMeta ):
	ssl_context: Opt[ssl.SSLContext] = None
	timeout: Opt[float] = None # seconds, None or 0 means block forever

	def ssl_context_or_default_client ( self ) -> ssl.SSLContext:
		# the chain is still verified, the server name is checked by verify_server_identity()
		if self.ssl_context is None:
			ctx = ssl.create_default_context ( ssl.Purpose.SERVER_AUTH )
			ctx.check_hostname = False
			ctx.verify_mode = ssl.CERT_REQUIRED
			self.ssl_context = ctx
		return self.ssl_context

	def _timeout_or_none ( self ) -> Opt[float]:
		return self.timeout or None


class SyncTransport ( Transport ):
	@abstractmethod
	def read ( self ) -> bytes:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.read()' )

	@abstractmethod
	def write ( self, data: BYTES ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.write()' )

	@abstractmethod
	def starttls_client ( self, server_hostname: str ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.starttls_client()' )

	@abstractmethod
	def peer_certificates ( self ) -> List[bytes]:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.peer_certificates()' )

	@abstractmethod
	def close ( self ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.close()' )


class AsyncTransport ( Transport ):
	@abstractmethod
	def lock ( self ) -> Any:
		# an async context manager from the transport's own event loop library
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.lock()' )

	@abstractmethod
	async def read ( self ) -> bytes:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.read()' )

	@abstractmethod
	async def write ( self, data: BYTES ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.write()' )

	@abstractmethod
	async def starttls_client ( self, server_hostname: str ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.starttls_client()' )

	@abstractmethod
	def peer_certificates ( self ) -> List[bytes]:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.peer_certificates()' )

	@abstractmethod
	async def close ( self ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.close()' )
