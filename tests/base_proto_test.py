# python imports:
import contextlib
import logging
from pathlib import Path
import sys
from typing import Iterator, List
import unittest

if __name__ == '__main__': # pragma: no cover
	sys.path.append ( str ( Path ( __file__ ).parent.parent.absolute() ) )

# sieve_proto imports:
import base_proto

logger = logging.getLogger ( __name__ )

@contextlib.contextmanager
def quiet_logging ( quiet: bool = True ) -> Iterator[None]:
	try:
		if quiet:
			logging.disable ( logging.CRITICAL )
		yield None
	finally:
		if quiet:
			logging.disable ( logging.NOTSET )


class LineProtocol ( base_proto.ClientProtocol ):
	def __init__ ( self, tls: bool ) -> None:
		super().__init__ ( tls )
		self.buf = b''

	def _feed ( self, data: bytes ) -> None:
		self.buf += data

	def readline ( self ) -> Iterator[base_proto.Event]:
		while b'\n' not in self.buf:
			yield from base_proto.NeedDataEvent().go()


class LineResponse ( base_proto.BaseResponse ):
	def __init__ ( self, line: bytes ) -> None:
		self.line = line

	def is_success ( self ) -> bool:
		return not self.line.startswith ( b'-' )


class EchoRequest ( base_proto.RequestT[LineResponse] ):
	responsecls = LineResponse

	def __init__ ( self, text: bytes ) -> None:
		self.text = text

	def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
		assert isinstance ( client, LineProtocol )
		yield from base_proto.SendDataEvent ( self.text, b'\r\n' ).go()
		yield from client.readline()
		line, client.buf = client.buf.split ( b'\n', 1 )
		raise LineResponse ( line.rstrip ( b'\r' ) )


class Tests ( unittest.TestCase ):
	def test_misc ( self ) -> None:
		test = self

		class BadResponse ( base_proto.BaseResponse ):
			def is_success ( self ) -> bool:
				return super().is_success() # type: ignore[safe-super]
		bad1 = BadResponse()
		with test.assertRaises ( NotImplementedError ):
			bad1.is_success()

		class BadRequest ( base_proto.BaseRequest ):
			def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
				return super()._client_protocol ( client ) # type: ignore[safe-super]
		bad2 = BadRequest()
		with test.assertRaises ( NotImplementedError ):
			bad2._client_protocol ( LineProtocol ( False ) )

		class BadProtocol ( base_proto.ClientProtocol ):
			def _feed ( self, data: bytes ) -> None:
				super()._feed ( data ) # type: ignore[safe-super]
		with test.assertRaises ( NotImplementedError ):
			list ( BadProtocol ( False ).receive ( b'x' ) )

	def test_round_trip ( self ) -> None:
		cp = LineProtocol ( False )
		request = EchoRequest ( b'hello' )
		sent: List[bytes] = []
		for event in cp.send ( request ):
			assert isinstance ( event, base_proto.SendDataEvent )
			sent.extend ( event.chunks )
		self.assertEqual ( sent, [ b'hello', b'\r\n' ] )
		self.assertIsNotNone ( cp.need_data )
		self.assertEqual ( list ( cp.receive ( b'hel' ) ), [] )
		self.assertIsNone ( request.base_response )
		self.assertEqual ( list ( cp.receive ( bytearray ( b'lo\r\nextra' ) ) ), [] )
		self.assertEqual ( request.response.line, b'hello' )
		self.assertIsNone ( cp.request )
		# unsolicited data stays buffered
		self.assertEqual ( list ( cp.receive ( b' data\r\n' ) ), [] )
		request = EchoRequest ( b'again' )
		list ( cp.send ( request ) )
		self.assertEqual ( request.response.line, b'extra data' )

	def test_failure_responses_are_returned ( self ) -> None:
		cp = LineProtocol ( False )
		request = EchoRequest ( b'x' )
		list ( cp.send ( request ) )
		list ( cp.receive ( b'-ERR nope\r\n' ) )
		self.assertFalse ( request.response.is_success() )

	def test_one_request_at_a_time ( self ) -> None:
		cp = LineProtocol ( False )
		list ( cp.send ( EchoRequest ( b'one' ) ) )
		with self.assertRaises ( AssertionError ):
			list ( cp.send ( EchoRequest ( b'two' ) ) )

	def test_eof ( self ) -> None:
		cp = LineProtocol ( False )
		with self.assertRaises ( base_proto.Closed ):
			list ( cp.receive ( b'' ) )
		list ( cp.send ( EchoRequest ( b'x' ) ) )
		with self.assertRaises ( base_proto.Closed ) as cm:
			list ( cp.receive ( b'' ) )
		self.assertEqual ( repr ( cm.exception ), "Closed('EOF')" )
		self.assertIsNone ( cp.request )

	def test_handler_exceptions_are_thrown_back ( self ) -> None:
		cp = LineProtocol ( False )
		seen: List[BaseException] = []

		class CatchRequest ( base_proto.RequestT[LineResponse] ):
			responsecls = LineResponse
			def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
				try:
					yield base_proto.SendDataEvent ( b'boom' )
				except OSError as e:
					seen.append ( e )
				raise LineResponse ( b'-handled' )

		request = CatchRequest()
		for event in cp.send ( request ):
			try:
				raise OSError ( 'write failed' )
			except OSError:
				event.exc_info = sys.exc_info()
		self.assertEqual ( [ repr ( e ) for e in seen ], [ "OSError('write failed')" ] )
		self.assertEqual ( request.response.line, b'-handled' )

	def test_errors ( self ) -> None:
		class OSErrorRequest ( EchoRequest ):
			def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
				yield from ()
				raise ConnectionResetError ( 'reset' )
		cp = LineProtocol ( False )
		with self.assertRaises ( ConnectionResetError ):
			list ( cp.send ( OSErrorRequest ( b'' ) ) )
		self.assertIsNone ( cp.request )

		class BuggyRequest ( EchoRequest ):
			def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
				yield from ()
				raise KeyError ( 'oops' )
		with self.assertRaises ( base_proto.Closed ) as cm:
			with quiet_logging():
				list ( cp.send ( BuggyRequest ( b'' ) ) )
		self.assertEqual ( repr ( cm.exception ), '''Closed("KeyError('oops')")''' )
		self.assertIsNone ( cp.request )

		class InvalidRequest ( EchoRequest ):
			def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
				yield from () # this will trigger internal protocol error below
		with self.assertRaises ( base_proto.Closed ) as cm:
			with quiet_logging():
				list ( cp.send ( InvalidRequest ( b'' ) ) )
		self.assertEqual ( repr ( cm.exception ), "Closed('INTERNAL ERROR - CLIENT PROTOCOLS MUST THROW THEIR RESPONSE')" )

	def test_secret_repr ( self ) -> None:
		self.assertEqual ( repr ( base_proto.SendDataEvent ( b'x' ) ), "base_proto.SendDataEvent(chunks=(b'x',))" )
		self.assertEqual ( repr ( base_proto.SendDataEvent ( b'x', secret = True ) ), 'base_proto.SendDataEvent(<redacted>)' )
		self.assertEqual ( repr ( base_proto.NeedDataEvent() ), 'base_proto.NeedDataEvent()' )

if __name__ == '__main__':
	logging.basicConfig ( level = logging.DEBUG )
	unittest.main()
