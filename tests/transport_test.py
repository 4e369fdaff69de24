# python imports:
import logging
from pathlib import Path
import socket
import ssl
import sys
from typing import List
import trio # pip install trio
import unittest

if __name__ == '__main__': # pragma: no cover
	sys.path.append ( str ( Path ( __file__ ).parent.parent.absolute() ) )

# sieve_proto imports:
import transport
from transport_socket import SocketTransport
from util import BYTES

logger = logging.getLogger ( __name__ )

class Tests ( unittest.TestCase ):
	def test_coverage ( self ) -> None:
		async def _test() -> None:
			class ST ( transport.SyncTransport ):
				def read ( self ) -> bytes:
					return super().read() # type: ignore[safe-super]
				def write ( self, data: BYTES ) -> None:
					super().write ( data ) # type: ignore[safe-super]
				def starttls_client ( self, server_hostname: str ) -> None:
					super().starttls_client ( server_hostname ) # type: ignore[safe-super]
				def peer_certificates ( self ) -> List[bytes]:
					return super().peer_certificates() # type: ignore[safe-super]
				def close ( self ) -> None:
					super().close() # type: ignore[safe-super]
			st = ST()
			with self.assertRaises ( NotImplementedError ):
				st.read()
			with self.assertRaises ( NotImplementedError ):
				st.write ( b'foo' )
			with self.assertRaises ( NotImplementedError ):
				st.starttls_client ( 'localhost' )
			with self.assertRaises ( NotImplementedError ):
				st.peer_certificates()
			with self.assertRaises ( NotImplementedError ):
				st.close()
			class AT ( transport.AsyncTransport ):
				def lock ( self ) -> trio.Lock:
					return super().lock() # type: ignore[safe-super]
				async def read ( self ) -> bytes:
					return await super().read() # type: ignore[safe-super]
				async def write ( self, data: BYTES ) -> None:
					await super().write ( data ) # type: ignore[safe-super]
				async def starttls_client ( self, server_hostname: str ) -> None:
					await super().starttls_client ( server_hostname ) # type: ignore[safe-super]
				def peer_certificates ( self ) -> List[bytes]:
					return super().peer_certificates() # type: ignore[safe-super]
				async def close ( self ) -> None:
					await super().close() # type: ignore[safe-super]
			at = AT()
			with self.assertRaises ( NotImplementedError ):
				at.lock()
			with self.assertRaises ( NotImplementedError ):
				await at.read()
			with self.assertRaises ( NotImplementedError ):
				await at.write ( b'foo' )
			with self.assertRaises ( NotImplementedError ):
				await at.starttls_client ( 'localhost' )
			with self.assertRaises ( NotImplementedError ):
				at.peer_certificates()
			with self.assertRaises ( NotImplementedError ):
				await at.close()
		trio.run ( _test )

	def test_socket_timeout ( self ) -> None:
		thing1, thing2 = socket.socketpair()
		try:
			xport = SocketTransport ( thing1, 0.05 )
			self.assertEqual ( thing1.gettimeout(), 0.05 )
			with self.assertRaises ( TimeoutError ):
				xport.read()
			xport.timeout = 0
			self.assertIsNone ( thing1.gettimeout() )
			self.assertEqual ( xport.peer_certificates(), [] )
			thing2.sendall ( b'OK\r\n' )
			self.assertEqual ( xport.read(), b'OK\r\n' )
			xport.write ( b'NOOP\r\n' )
			self.assertEqual ( thing2.recv ( 100 ), b'NOOP\r\n' )
			xport.close()
			self.assertEqual ( thing1.fileno(), -1 )
		finally:
			thing1.close()
			thing2.close()

	def test_default_ssl_context ( self ) -> None:
		thing1, thing2 = socket.socketpair()
		try:
			xport = SocketTransport ( thing1 )
			ctx = xport.ssl_context_or_default_client()
			self.assertIs ( xport.ssl_context_or_default_client(), ctx )
			# identity is checked by verify_server_identity(), not the handshake
			self.assertFalse ( ctx.check_hostname )
			self.assertEqual ( ctx.verify_mode, ssl.CERT_REQUIRED )
		finally:
			thing1.close()
			thing2.close()

if __name__ == '__main__':
	logging.basicConfig ( level = logging.DEBUG )
	unittest.main()
