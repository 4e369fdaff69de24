from __future__ import annotations

# python imports:
from typing import Optional as Opt, Type

# sieve_proto imports:
from sieve_proto import PORT
import sieve_async
from transport_aio import AsyncioTransport as Transport

class Client ( sieve_async.Client ):
	@classmethod
	async def connect ( cls: Type[Client],
		hostname: str,
		port: int = PORT,
		*,
		timeout: Opt[float] = None,
		encoding: str = 'utf-8',
		verify_hostname: bool = True,
	) -> Client:
		transport = await Transport.connect ( hostname, port, timeout )
		return cls ( transport, False, hostname, encoding = encoding, verify_hostname = verify_hostname )
