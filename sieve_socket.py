from __future__ import annotations

# python imports:
from typing import Optional as Opt, Type

# sieve_proto imports:
from sieve_proto import PORT
import sieve_sync
from transport_socket import SocketTransport as Transport

class Client ( sieve_sync.Client ):
	@classmethod
	def connect ( cls: Type[Client],
		hostname: str,
		port: int = PORT,
		*,
		timeout: Opt[float] = None,
		encoding: str = 'utf-8',
		verify_hostname: bool = True,
	) -> Client:
		transport = Transport.connect ( hostname, port, timeout )
		return cls ( transport, False, hostname, encoding = encoding, verify_hostname = verify_hostname )
