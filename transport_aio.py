from __future__ import annotations

# python imports:
import asyncio
import contextlib
import logging
from typing import Awaitable, Iterator, List, Optional as Opt, Type, TypeVar

# sieve_proto imports:
from transport import AsyncTransport, peer_chain

logger = logging.getLogger ( __name__ )

T = TypeVar ( 'T' )


@contextlib.contextmanager
def asyncio_timeout ( self: object, text: str ) -> Iterator[None]:
	try:
		yield
	except asyncio.TimeoutError:
		cls = self.__class__
		raise TimeoutError ( f'{cls.__module__}.{cls.__name__} timeout {text}' ) from None

class AsyncioTransport ( AsyncTransport ):
	rx: asyncio.StreamReader
	tx: asyncio.StreamWriter
	close_timeout: float = 0.05

	def __init__ ( self,
		rx: asyncio.StreamReader,
		tx: asyncio.StreamWriter,
		timeout: Opt[float] = None,
	) -> None:
		self.rx, self.tx = rx, tx
		self.timeout = timeout
		self._lock = asyncio.Lock()

	@classmethod
	async def connect ( cls: Type[AsyncioTransport],
		hostname: str,
		port: int,
		timeout: Opt[float] = None,
	) -> AsyncioTransport:
		#log = logger.getChild ( 'AsyncioTransport.connect' )
		rx, tx = await asyncio.open_connection ( hostname, port )
		return cls ( rx, tx, timeout )

	def lock ( self ) -> asyncio.Lock:
		return self._lock

	async def _wait ( self, aw: Awaitable[T], text: str ) -> T:
		with asyncio_timeout ( self, text ):
			return await asyncio.wait_for ( aw, timeout = self._timeout_or_none() )

	async def read ( self ) -> bytes:
		#log = logger.getChild ( 'AsyncioTransport.read' )
		# read() rather than readline(), literals don't have to end on a line boundary
		return await self._wait ( self.rx.read ( 4096 ), 'waiting to read data' )

	async def write ( self, data: bytes ) -> None:
		#log = logger.getChild ( 'AsyncioTransport.write' )
		self.tx.write ( data )
		await self._wait ( self.tx.drain(), 'waiting to write data' )

	async def starttls_client ( self, server_hostname: str ) -> None:
		context = self.ssl_context_or_default_client()

		await self._wait ( self.tx.start_tls (
			context,
			server_hostname = server_hostname,
		), 'waiting for TLS handshake' )

	def peer_certificates ( self ) -> List[bytes]:
		sslobj = self.tx.get_extra_info ( 'ssl_object' )
		if sslobj is None:
			return []
		return peer_chain ( sslobj )

	async def close ( self ) -> None:
		#log = logger.getChild ( 'AsyncioTransport.close' )
		self.tx.close()
		with contextlib.suppress ( asyncio.TimeoutError, OSError ):
			await asyncio.wait_for ( self.tx.wait_closed(), timeout = self.close_timeout )
