from __future__ import annotations

# python imports:
import logging
import math
import trio # pip install trio
from typing import List, Optional as Opt, Type

# sieve_proto imports:
from transport import AsyncTransport, peer_chain

logger = logging.getLogger ( __name__ )


class TrioTransport ( AsyncTransport ):
	happy_eyeballs_delay: float = 0.25 # this is the same as trio's default circa version 0.16.0
	close_timeout: float = 0.05
	stream: trio.abc.Stream

	def __init__ ( self, stream: trio.abc.Stream, timeout: Opt[float] = None ) -> None:
		self.stream = stream
		self.timeout = timeout
		self._lock = trio.Lock()

	@classmethod
	async def connect ( cls: Type[TrioTransport],
		hostname: str,
		port: int,
		timeout: Opt[float] = None,
	) -> TrioTransport:
		#log = logger.getChild ( 'TrioTransport.connect' )
		stream = await trio.open_tcp_stream ( hostname, port,
			happy_eyeballs_delay = cls.happy_eyeballs_delay,
		)
		return cls ( stream, timeout )

	def lock ( self ) -> trio.Lock:
		return self._lock

	async def read ( self ) -> bytes:
		#log = logger.getChild ( 'TrioTransport.read' )
		with trio.move_on_after ( self.timeout or math.inf ):
			return bytes ( await self.stream.receive_some() )
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout waiting to read data' )

	async def write ( self, data: bytes ) -> None:
		#log = logger.getChild ( 'TrioTransport.write' )
		with trio.move_on_after ( self.timeout or math.inf ):
			await self.stream.send_all ( data )
			return
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout waiting to write {len(data)} bytes' )

	async def starttls_client ( self, server_hostname: str ) -> None:
		context = self.ssl_context_or_default_client()

		stream = trio.SSLStream (
			self.stream,
			ssl_context = context,
			server_hostname = server_hostname,
		)
		# handshake now so certificate problems surface as part of the upgrade
		with trio.move_on_after ( self.timeout or math.inf ):
			await stream.do_handshake()
			self.stream = stream
			return
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout waiting for TLS handshake' )

	def peer_certificates ( self ) -> List[bytes]:
		if not isinstance ( self.stream, trio.SSLStream ):
			return []
		return peer_chain ( self.stream )

	async def close ( self ) -> None:
		#log = logger.getChild ( 'TrioTransport.close' )
		with trio.move_on_after ( self.close_timeout ):
			await self.stream.aclose()
