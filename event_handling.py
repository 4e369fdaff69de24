from __future__ import annotations

# python imports:
from abc import ABCMeta
import contextlib
import logging
import sys
import threading
from typing import Iterator, Optional as Opt, Type, Union

# sieve_proto imports:
from base_proto import RequestType, ResponseType, Event, SendDataEvent
from sieve_proto import (
	Client as ProtocolClient, ParseError, ServerCapabilities, ServerIdentityError,
	verify_server_identity,
)
from transport import SyncTransport, AsyncTransport
from util import b2s

logger = logging.getLogger ( __name__ )


@contextlib.contextmanager
def _event_exception_safety ( event: Event ) -> Iterator[None]:
	# the exception gets thrown back into the request that yielded the event
	try:
		yield
	except Exception:
		event.exc_info = sys.exc_info()


def _wire ( data: bytes ) -> str:
	return b2s ( data, 'utf-8', 'replace' ).rstrip()


class SyncEventHandler:
	transport: SyncTransport

	def on_SendDataEvent ( self, event: SendDataEvent ) -> None:
		log = logger.getChild ( 'SyncEventHandler.on_SendDataEvent' )
		for chunk in event.chunks:
			log.debug ( 'C><redacted>' if event.secret else f'C>{_wire(chunk)}' )
			self.transport.write ( chunk )

	def _on_event ( self, event: Event ) -> None:
		with _event_exception_safety ( event ):
			func = getattr ( self, f'on_{type(event).__name__}' )
			func ( event )


class AsyncEventHandler:
	transport: AsyncTransport

	async def on_SendDataEvent ( self, event: SendDataEvent ) -> None:
		log = logger.getChild ( 'AsyncEventHandler.on_SendDataEvent' )
		for chunk in event.chunks:
			log.debug ( 'C><redacted>' if event.secret else f'C>{_wire(chunk)}' )
			await self.transport.write ( chunk )

	async def _on_event ( self, event: Event ) -> None:
		with _event_exception_safety ( event ):
			func = getattr ( self, f'on_{type(event).__name__}' )
			await func ( event )


class Client ( metaclass = ABCMeta ):
	protocls: Type[ProtocolClient] = ProtocolClient
	proto: ProtocolClient
	transport: Union[SyncTransport,AsyncTransport]
	server_hostname: str
	verify_hostname: bool
	_closed: bool = False

	@property
	def capabilities ( self ) -> Opt[ServerCapabilities]:
		return self.proto.capabilities

	@property
	def timeout ( self ) -> Opt[float]:
		'''
		read/write timeout in seconds, None or 0 waits forever
		'''
		return self.transport.timeout

	@timeout.setter
	def timeout ( self, timeout: Opt[float] ) -> None:
		self.transport.timeout = timeout

	def is_connected ( self ) -> bool:
		return not ( self._closed or self.proto.closed )

	def _verify_peer ( self, transport: Union[SyncTransport,AsyncTransport] ) -> None:
		log = logger.getChild ( 'Client._verify_peer' )
		if not self.verify_hostname:
			log.debug ( f'not verifying the identity of {self.server_hostname!r}' )
			return
		verify_server_identity ( transport.peer_certificates(), self.server_hostname )


class SyncClient ( SyncEventHandler, Client ):
	def __init__ ( self,
		transport: SyncTransport,
		tls: bool,
		server_hostname: str,
		*,
		encoding: str = 'utf-8',
		verify_hostname: bool = True,
	) -> None:
		self.transport = transport
		self.server_hostname = server_hostname
		self.verify_hostname = verify_hostname
		self.proto = self.protocls ( tls, encoding )
		self._lock = threading.RLock()

	def _request ( self, request: RequestType[ResponseType] ) -> ResponseType:
		log = logger.getChild ( 'SyncClient._request' )
		with self._lock:
			try:
				for event in self.proto.send ( request ):
					self._on_event ( event )
				while request.base_response is None:
					data: bytes = self.transport.read()
					log.debug ( f'S>{_wire(data)}' )
					for event in self.proto.receive ( data ):
						self._on_event ( event )
			except ( OSError, ParseError ):
				# the stream is out of sync now
				self.proto.abandon()
				raise
		return request.response

	def _starttls ( self ) -> None:
		self.transport.starttls_client ( self.server_hostname )
		try:
			self._verify_peer ( self.transport )
		except ServerIdentityError:
			self.close()
			raise

	def close ( self ) -> None:
		self._closed = True
		self.transport.close()


class AsyncClient ( AsyncEventHandler, Client ):
	def __init__ ( self,
		transport: AsyncTransport,
		tls: bool,
		server_hostname: str,
		*,
		encoding: str = 'utf-8',
		verify_hostname: bool = True,
	) -> None:
		self.transport = transport
		self.server_hostname = server_hostname
		self.verify_hostname = verify_hostname
		self.proto = self.protocls ( tls, encoding )

	async def _request ( self, request: RequestType[ResponseType] ) -> ResponseType:
		log = logger.getChild ( 'AsyncClient._request' )
		async with self.transport.lock():
			try:
				for event in self.proto.send ( request ):
					await self._on_event ( event )
				while request.base_response is None:
					data: bytes = await self.transport.read()
					log.debug ( f'S>{_wire(data)}' )
					for event in self.proto.receive ( data ):
						await self._on_event ( event )
			except ( OSError, ParseError ):
				# the stream is out of sync now
				self.proto.abandon()
				raise
		return request.response

	async def _starttls ( self ) -> None:
		await self.transport.starttls_client ( self.server_hostname )
		try:
			self._verify_peer ( self.transport )
		except ServerIdentityError:
			await self.close()
			raise

	async def close ( self ) -> None:
		self._closed = True
		await self.transport.close()
