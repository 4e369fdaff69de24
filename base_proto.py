from __future__ import annotations

# python imports:
from abc import ABCMeta, abstractmethod
import logging
from types import TracebackType
from typing import (
	Generator, Generic, Iterator, Optional as Opt, Sequence as Seq, Tuple,
	Type, TypeVar, Union,
)

# sieve_proto imports:
from util import bytes_types, BYTES

logger = logging.getLogger ( __name__ )

EXC_INFO = Opt[Union[
	Tuple[Type[BaseException],BaseException,TracebackType],
	Tuple[None,None,None],
]]


class Event ( Exception ):
	exc_info: EXC_INFO = None

	def go ( self ) -> Iterator[Event]:
		yield self

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}()'


class Closed ( Exception ):
	def __init__ ( self, reason: str = '' ) -> None:
		super().__init__ ( reason or '(none given)' )


class ProtocolError ( Exception ):
	# fatal to the connection, never wrapped by the request runner
	pass


ResponseType = TypeVar ( 'ResponseType', bound = 'BaseResponse' )
class BaseResponse ( Exception, metaclass = ABCMeta ):
	@abstractmethod
	def is_success ( self ) -> bool:
		cls = self.__class__
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.is_success()' )


RequestProtocolGenerator = Generator[Event,None,None]


class BaseRequest ( metaclass = ABCMeta ):
	# 1) client uses __init__() to construct request
	# 2) _client_protocol() implements the client-side state machine
	# 3) the state machine finishes by raising its response
	base_response: Opt[BaseResponse] = None

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}()'

	@abstractmethod
	def _client_protocol ( self, client: ClientProtocol ) -> RequestProtocolGenerator:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}._client_protocol()' )


class RequestT ( BaseRequest, Generic[ResponseType] ):
	responsecls: Type[ResponseType]

	@property
	def response ( self ) -> ResponseType:
		assert isinstance ( self.base_response, self.responsecls ), f'invalid {self.base_response=}'
		return self.base_response
RequestType = RequestT[ResponseType]


class NeedDataEvent ( Event ):
	# never leaves the protocol, it parks the request until receive() is called

	def reset ( self ) -> NeedDataEvent:
		self.exc_info = None
		return self

	def go ( self ) -> Iterator[Event]:
		self.reset()
		yield from super().go()


class SendDataEvent ( Event ):

	def __init__ ( self, *chunks: bytes, secret: bool = False ) -> None:
		self.chunks: Seq[bytes] = chunks
		self.secret = secret # don't log the content

	def __repr__ ( self ) -> str:
		cls = type ( self )
		if self.secret:
			return f'{cls.__module__}.{cls.__name__}(<redacted>)'
		return f'{cls.__module__}.{cls.__name__}(chunks={self.chunks!r})'


class ClientProtocol ( metaclass = ABCMeta ):
	request: Opt[BaseRequest] = None
	request_protocol: Opt[Generator[Event,None,None]] = None
	need_data: Opt[NeedDataEvent] = None
	tls: bool # whether or not the connection is currently encrypted

	def __init__ ( self, tls: bool ) -> None:
		self.tls = tls

	def send ( self, request: BaseRequest ) -> Iterator[Event]:
		#log = logger.getChild ( 'ClientProtocol.send' )
		assert self.request is None, f'trying to send {request=} but not finished processing {self.request=}'
		self.request = request
		self.request_protocol = request._client_protocol ( self )
		yield from self._run_protocol()

	def receive ( self, data: BYTES ) -> Iterator[Event]:
		assert isinstance ( data, bytes_types ), f'invalid {data=}'
		self._feed ( bytes ( data ) ) # b'' is the EOF indicator
		if not data:
			# every reply ends in CRLF, EOF before that is fatal
			self._finish()
			raise Closed ( 'EOF' )
		if self.need_data is None:
			return # unsolicited data stays buffered for the next request
		self.need_data = None
		yield from self._run_protocol()

	@abstractmethod
	def _feed ( self, data: bytes ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}._feed()' )

	def _finish ( self ) -> Opt[BaseRequest]:
		request, self.request = self.request, None
		self.request_protocol = None
		self.need_data = None
		return request

	def _run_protocol ( self ) -> Iterator[Event]:
		log = logger.getChild ( 'ClientProtocol._run_protocol' )
		assert self.request is not None, f'invalid {self.request=}'
		assert self.request_protocol is not None, f'invalid {self.request_protocol=}'
		pending: Opt[BaseException] = None
		try:
			while True:
				if pending is None:
					event = next ( self.request_protocol )
				else:
					exc, pending = pending, None
					event = self.request_protocol.throw ( exc )
				if isinstance ( event, NeedDataEvent ):
					self.need_data = event.reset()
					return
				yield event
				if event.exc_info:
					pending = event.exc_info[1]
					event.exc_info = None
		except BaseResponse as response:
			# NO and BYE are answers too, they are handed back to the caller
			request = self._finish()
			assert isinstance ( request, BaseRequest )
			request.base_response = response
		except ( Closed, ProtocolError, OSError ):
			self._finish()
			raise
		except StopIteration:
			# client protocols *must* raise their response
			# if not, the driver would wait forever for data that never arrives
			request = self._finish()
			log.warning (
				f'INTERNAL ERROR:'
				f' {type(request).__module__}.{type(request).__name__}'
				f'._client_protocol() exit w/o response - this can cause upstack deadlock'
			)
			raise Closed ( 'INTERNAL ERROR - CLIENT PROTOCOLS MUST THROW THEIR RESPONSE' )
		except Exception as e:
			self._finish()
			log.exception ( 'internal protocol error:' )
			raise Closed ( repr ( e ) ) from e
