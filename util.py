import base64
from typing import Union

BYTES = Union[bytes,bytearray,memoryview]
bytes_types = ( bytes, bytearray, memoryview )

def b2s ( b: BYTES, encoding: str = 'us-ascii', errors: str = 'strict' ) -> str:
	return bytes ( b ).decode ( encoding, errors )

def s2b ( s: str, encoding: str = 'us-ascii', errors: str = 'strict' ) -> bytes:
	return s.encode ( encoding, errors )

def b64_encode ( b: BYTES ) -> str:
	return b2s ( base64.b64encode ( bytes ( b ) ) )

def b64_decode ( s: str ) -> bytes:
	# SASL challenges must be strict base64 (RFC 4648), no embedded whitespace
	return base64.b64decode ( s2b ( s ), validate = True )
