from __future__ import annotations

# python imports:
import logging
import socket
import ssl
from typing import List, Optional as Opt, Type

# sieve_proto imports:
from transport import SyncTransport, peer_chain

logger = logging.getLogger ( __name__ )


class SocketTransport ( SyncTransport ):
	sock: socket.socket
	_timeout: Opt[float] = None

	def __init__ ( self, sock: socket.socket, timeout: Opt[float] = None ) -> None:
		self.sock = sock
		self.timeout = timeout

	@property # type: ignore[override]
	def timeout ( self ) -> Opt[float]:
		# seconds, applied to the socket right away
		return self._timeout

	@timeout.setter
	def timeout ( self, timeout: Opt[float] ) -> None:
		self._timeout = timeout
		self.sock.settimeout ( self._timeout_or_none() )

	@classmethod
	def connect ( cls: Type[SocketTransport],
		hostname: str,
		port: int,
		timeout: Opt[float] = None,
	) -> SocketTransport:
		log = logger.getChild ( 'SocketTransport.connect' )

		for *params, _, address in socket.getaddrinfo ( hostname, port, type = socket.SOCK_STREAM ):
			sock = socket.socket ( *params )
			sock.settimeout ( timeout or None )
			try:
				sock.connect ( address )
			except OSError as e:
				log.warning ( f'Error connecting to {address=}: {e!r}' )
				sock.close()
				continue
			else:
				return cls ( sock, timeout )
		raise ConnectionError ( f'Unable to connect to {hostname=} {port=}' )

	def read ( self ) -> bytes:
		#log = logger.getChild ( 'SocketTransport.read' )
		return self.sock.recv ( 4096 )

	def write ( self, data: bytes ) -> None:
		#log = logger.getChild ( 'SocketTransport.write' )
		self.sock.sendall ( data )

	def starttls_client ( self, server_hostname: str ) -> None:
		context = self.ssl_context_or_default_client()

		self.sock = context.wrap_socket (
			self.sock,
			server_hostname = server_hostname,
		)
		# the timeout belongs to the stream, the new one needs it too
		self.sock.settimeout ( self._timeout_or_none() )

	def peer_certificates ( self ) -> List[bytes]:
		if not isinstance ( self.sock, ssl.SSLSocket ):
			return []
		return peer_chain ( self.sock )

	def close ( self ) -> None:
		#log = logger.getChild ( 'SocketTransport.close' )
		self.sock.close()
