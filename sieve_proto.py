#region PROLOGUE --------------------------------------------------------------
'''
sans-io client side of ManageSieve (RFC 5804)

requests are generators that yield events (send these bytes, I need more
bytes, upgrade to TLS now) and finish by raising their Response. The drivers
in sieve_sync/sieve_async turn those events into real I/O.
'''
from __future__ import annotations

# python imports:
from abc import abstractmethod
import enum
import ipaddress
import logging
import re
from typing import (
	Any, Dict, FrozenSet, Generator, Iterator, List, NamedTuple,
	Optional as Opt, Sequence as Seq, Tuple, Type, TypeVar, Union,
)

from cryptography import x509 # pip install cryptography
from cryptography.x509.oid import NameOID

# sieve_proto imports:
from base_proto import (
	BaseResponse, BaseRequest, RequestT, Event, NeedDataEvent, SendDataEvent,
	Closed, ProtocolError, RequestProtocolGenerator, ClientProtocol,
)
from sieve_sasl import Authenticator
from util import BYTES, b2s, s2b, b64_encode, b64_decode

logger = logging.getLogger ( __name__ )

PORT = 4190 # RFC 5804 1.8
QUOTED_MAX = 1024 # octets of an outgoing quoted string, not counting the opening DQUOTE

_r_number = re.compile ( r'^[0-9]+$' )
_r_not_quotable = re.compile ( r'[\r\n\0]' )

_LF = 0x0A
_CR = 0x0D
_DQUOTE = 0x22
_BACKSLASH = 0x5C
_WHITESPACE = frozenset ( b' \t\r' )
_DIGITS = frozenset ( b'0123456789' )
_SPECIALS = frozenset ( b'"(){}[]\\,:!' )
_ATOM_CHARS = frozenset ( c for c in range ( 0x21, 0x7F ) if c not in _SPECIALS )

#endregion
#region ERRORS ----------------------------------------------------------------

class ParseError ( ProtocolError ):
	'''
	the server sent something the grammar doesn't allow here

	the tokenizer doesn't try to resynchronize, the connection must be dropped
	'''
	def __init__ ( self, expected: str, actual: object, lineno: int, message: Opt[str] = None ) -> None:
		self.expected = expected
		self.actual = str ( actual )
		self.lineno = lineno
		super().__init__ ( message or f'Expecting {expected} got {self.actual} at line {lineno}' )


class AuthenticationError ( ProtocolError ):
	def __init__ ( self, message: str, response: Opt[Response] = None ) -> None:
		self.response = response
		super().__init__ ( message )


class ServerIdentityError ( ProtocolError ):
	def __init__ ( self, hostname: str, identities: Seq[str] ) -> None:
		self.hostname = hostname
		self.identities = tuple ( identities )
		if identities:
			text = f'Server name(s) {", ".join(map(repr,identities))} don\'t match wanted {hostname!r}'
		else:
			text = f'Server presented no identity to match against {hostname!r}'
		super().__init__ ( f'Secure connect failed: {text}' )

#endregion
#region TOKENIZER -------------------------------------------------------------

class TokenType ( enum.Enum ):
	ATOM = 'WORD'
	QUOTED = 'DQUOTE'
	NUMBER = 'NUMBER'
	CHAR = 'CHAR'
	EOL = 'EOL'
	EOF = 'EOF'


class LexMode ( enum.Enum ):
	NORMAL = 'normal'
	LITERAL = 'literal'


class Token ( NamedTuple ):
	type: TokenType
	value: Union[str,int] = ''
	lineno: int = 1

	def is_char ( self, c: str ) -> bool:
		return self.type is TokenType.CHAR and self.value == c

	def is_string_start ( self ) -> bool:
		return self.type is TokenType.QUOTED or self.is_char ( '{' )

	def __str__ ( self ) -> str:
		if self.type in ( TokenType.EOL, TokenType.EOF ):
			return self.type.value
		if self.type is TokenType.CHAR:
			return str ( self.value )
		return f'{self.type.value} [{self.value}]'


TokenGenerator = Generator[Event,None,Token]
StringGenerator = Generator[Event,None,str]


class Tokenizer:
	'''
	turns the octets received from the server into tokens

	Normal mode classifies octets into words, quoted strings, numbers,
	single character specials and end-of-line. Literal mode hands back an
	exact number of raw octets. When the buffer runs dry in the middle of a
	token the generators yield a NeedDataEvent and pick up where they left
	off once feed() has been called again.
	'''
	max_token: int = 8192 # octets, literals are exempt

	def __init__ ( self, encoding: str = 'utf-8' ) -> None:
		self.encoding = encoding
		self.mode = LexMode.NORMAL
		self.lineno = 1
		self.eof = False
		self._buf = bytearray()
		self._pos = 0
		self._pushback: Opt[Token] = None

	def feed ( self, data: BYTES ) -> None:
		if not data:
			self.eof = True
			return
		if self._pos:
			del self._buf[:self._pos]
			self._pos = 0
		self._buf += data

	def push_back ( self, token: Token ) -> None:
		assert self._pushback is None, f'only one token of lookahead, already holding {self._pushback!r}'
		self._pushback = token

	def next_token ( self ) -> TokenGenerator:
		assert self.mode is LexMode.NORMAL, f'invalid {self.mode=}'
		if self._pushback is not None:
			token, self._pushback = self._pushback, None
			return token
		while ( token := self._scan() ) is None:
			pending = len ( self._buf ) - self._pos
			if pending > self.max_token:
				raise ParseError ( f'token of at most {self.max_token} octets', f'{pending} octets', self.lineno )
			yield from NeedDataEvent().go()
		return token

	def read_literal ( self, length: int ) -> StringGenerator:
		'''
		read exactly `length` octets and decode them

		the count is in encoded octets, not characters
		'''
		assert self._pushback is None, f'cannot read a literal with {self._pushback!r} pushed back'
		self.mode = LexMode.LITERAL
		try:
			while len ( self._buf ) - self._pos < length:
				if self.eof:
					raise ParseError ( f'{length} octets', 'EOF', self.lineno )
				yield from NeedDataEvent().go()
			raw = bytes ( self._buf[self._pos:self._pos + length] )
			self._pos += length
		finally:
			self.mode = LexMode.NORMAL
		self.lineno += raw.count ( b'\n' )
		return self._decode ( raw )

	def _decode ( self, raw: BYTES ) -> str:
		try:
			return b2s ( raw, self.encoding )
		except UnicodeDecodeError as e:
			raise ParseError ( f'{self.encoding} text', repr ( bytes ( raw[e.start:e.end] ) ), self.lineno ) from e

	def _scan ( self ) -> Opt[Token]:
		# returns None if the buffer ends before the token does
		buf, end = self._buf, len ( self._buf )
		pos = self._pos
		while pos < end and buf[pos] in _WHITESPACE:
			pos += 1
		self._pos = pos
		if pos == end:
			return Token ( TokenType.EOF, '', self.lineno ) if self.eof else None
		c = buf[pos]
		if c == _LF:
			self._pos = pos + 1
			token = Token ( TokenType.EOL, '', self.lineno )
			self.lineno += 1
			return token
		if c == _DQUOTE:
			return self._scan_quoted ( pos + 1 )
		if c in _DIGITS:
			return self._scan_run ( pos, _DIGITS, TokenType.NUMBER )
		if c in _ATOM_CHARS:
			return self._scan_run ( pos, _ATOM_CHARS, TokenType.ATOM )
		if c in _SPECIALS:
			self._pos = pos + 1
			return Token ( TokenType.CHAR, chr ( c ), self.lineno )
		raise ParseError ( 'token', f'octet 0x{c:02X}', self.lineno )

	def _scan_run ( self, start: int, chars: FrozenSet[int], toktype: TokenType ) -> Opt[Token]:
		buf, end = self._buf, len ( self._buf )
		pos = start
		while pos < end and buf[pos] in chars:
			pos += 1
		if pos == end and not self.eof:
			return None # the run might continue in the next read
		text = b2s ( buf[start:pos] )
		self._pos = pos
		if toktype is TokenType.NUMBER:
			return Token ( toktype, int ( text ), self.lineno )
		return Token ( toktype, text, self.lineno )

	def _scan_quoted ( self, start: int ) -> Opt[Token]:
		buf, end = self._buf, len ( self._buf )
		out = bytearray()
		pos = start
		while pos < end:
			c = buf[pos]
			if c == _DQUOTE:
				self._pos = pos + 1
				return Token ( TokenType.QUOTED, self._decode ( out ), self.lineno )
			if c == _BACKSLASH:
				pos += 1
				if pos == end:
					break
				c = buf[pos]
			if c in ( _CR, _LF ):
				raise ParseError ( 'DQUOTE', 'EOL', self.lineno )
			out.append ( c )
			pos += 1
		if self.eof:
			raise ParseError ( 'DQUOTE', 'EOF', self.lineno )
		return None

#endregion
#region STRING CODEC ----------------------------------------------------------

def _escape ( s: str, encoding: str ) -> Opt[bytes]:
	# None when the string can't travel as a quoted string
	if _r_not_quotable.search ( s ):
		return None
	escaped = s2b ( s.replace ( '\\', '\\\\' ).replace ( '"', '\\"' ), encoding )
	if len ( escaped ) + 1 > QUOTED_MAX:
		return None
	return escaped


def quote_string ( s: str, encoding: str = 'utf-8' ) -> bytes:
	escaped = _escape ( s, encoding )
	if escaped is None:
		raise ValueError ( f'string cannot be sent quoted (CR, LF, NUL or longer than {QUOTED_MAX} octets): {s[:40]!r}' )
	return b'"' + escaped + b'"'


def literal_string ( s: str, encoding: str = 'utf-8' ) -> bytes:
	raw = s2b ( s, encoding )
	return s2b ( f'{{{len(raw)}+}}\r\n' ) + raw


def encode_string ( s: str, encoding: str = 'utf-8' ) -> bytes:
	escaped = _escape ( s, encoding )
	if escaped is None:
		return literal_string ( s, encoding )
	return b'"' + escaped + b'"'


def parse_string ( tok: Tokenizer ) -> StringGenerator:
	token = yield from tok.next_token()
	if token.type is TokenType.QUOTED:
		assert isinstance ( token.value, str )
		return token.value
	if not token.is_char ( '{' ):
		raise ParseError ( 'DQUOTE or {', token, token.lineno )
	# literal: "{" number ["+"] "}" CRLF *OCTET
	token = yield from tok.next_token()
	if token.type is not TokenType.NUMBER:
		raise ParseError ( 'NUMBER', token, token.lineno )
	length = token.value
	assert isinstance ( length, int )
	token = yield from tok.next_token()
	if token.type is TokenType.ATOM and token.value == '+':
		token = yield from tok.next_token()
	if not token.is_char ( '}' ):
		raise ParseError ( '}', token, token.lineno )
	token = yield from tok.next_token()
	if token.type is not TokenType.EOL:
		raise ParseError ( 'EOL', token, token.lineno )
	logger.getChild ( 'parse_string' ).debug ( f'literal: reading {length} octets' )
	return ( yield from tok.read_literal ( length ) )

#endregion
#region RESPONSES -------------------------------------------------------------

class ResponseType ( enum.Enum ):
	OK = 'OK'
	NO = 'NO'
	BYE = 'BYE'


class ResponseCode ( enum.Enum ):
	AUTH_TOO_WEAK = ( 'AUTH-TOO-WEAK', False )
	ENCRYPT_NEEDED = ( 'ENCRYPT-NEEDED', False )
	SASL = ( 'SASL', True )
	REFERRAL = ( 'REFERRAL', True )
	TRANSITION_NEEDED = ( 'TRANSITION-NEEDED', False )
	TRYLATER = ( 'TRYLATER', False )
	ACTIVE = ( 'ACTIVE', False )
	NONEXISTENT = ( 'NONEXISTENT', False )
	ALREADYEXISTS = ( 'ALREADYEXISTS', False )
	WARNINGS = ( 'WARNINGS', False )
	TAG = ( 'TAG', True )
	QUOTA = ( 'QUOTA', False )
	EXTENSION = ( '', False ) # anything else, Response.subcodes[0] has the raw text

	def __init__ ( self, keyword: str, has_param: bool ) -> None:
		self.keyword = keyword
		self.has_param = has_param

	@classmethod
	def parse ( cls, raw: str ) -> ResponseCode:
		code = cls.__members__.get ( raw.upper().replace ( '-', '_' ) )
		if code is None or not code.keyword:
			return cls.EXTENSION
		return code


ResponseT = TypeVar ( 'ResponseT', bound = 'Response' )
class Response ( BaseResponse ):
	def __init__ ( self,
		type: ResponseType,
		code: Opt[ResponseCode] = None,
		subcodes: Seq[str] = (),
		param: Opt[str] = None,
		message: Opt[str] = None,
	) -> None:
		self.type = type
		self.code = code
		self.subcodes: Tuple[str,...] = tuple ( subcodes )
		self.param = param
		self.message = message
		super().__init__()

	@classmethod
	def wrap ( cls: Type[ResponseT], response: Response ) -> ResponseT:
		return cls ( response.type, response.code, response.subcodes, response.param, response.message )

	def is_success ( self ) -> bool:
		return self.type is ResponseType.OK

	@property
	def is_ok ( self ) -> bool:
		return self.type is ResponseType.OK

	@property
	def is_no ( self ) -> bool:
		return self.type is ResponseType.NO

	@property
	def is_bye ( self ) -> bool:
		return self.type is ResponseType.BYE

	def __str__ ( self ) -> str:
		text = self.type.value
		if self.subcodes:
			text += f' ({"/".join(self.subcodes)})'
		if self.message is not None:
			text += f' "{self.message}"'
		return text

	def __repr__ ( self ) -> str:
		cls = type ( self )
		args = [ repr ( self.type.value ) ]
		if self.subcodes:
			args.append ( f'code={"/".join(self.subcodes)!r}' )
		if self.param is not None:
			args.append ( f'param={self.param!r}' )
		if self.message is not None:
			args.append ( f'message={self.message!r}' )
		return f'{cls.__module__}.{cls.__name__}({", ".join(args)})'


class SieveScript ( NamedTuple ):
	name: str
	body: str = ''
	active: bool = False


class ServerCapabilities ( NamedTuple ):
	implementation: Opt[str] = None
	sasl: Tuple[str,...] = () # in the server's order of preference
	extensions: FrozenSet[str] = frozenset()
	starttls: bool = False
	max_redirects: int = 0
	notify: FrozenSet[str] = frozenset()
	language: Opt[str] = None
	owner: Opt[str] = None
	version: Opt[str] = None
	unknown: Tuple[str,...] = () # capabilities we skipped

	def has_sasl_method ( self, mechanism: str ) -> bool:
		return mechanism.upper() in ( m.upper() for m in self.sasl )

	def has_extension ( self, extension: str ) -> bool:
		return extension in self.extensions

	def has_notify ( self, method: str ) -> bool:
		return method.lower() in self.notify

	def is_valid ( self ) -> bool:
		# sanity check only, nothing enforces it
		return (
			self.version == '1.0'
		and
			bool ( self.implementation )
		and
			bool ( self.extensions )
		)


class CapabilityResponse ( Response ):
	capabilities: ServerCapabilities


class ListScriptsResponse ( Response ):
	scripts: List[SieveScript]


class GetScriptResponse ( Response ):
	script: Opt[SieveScript] # None unless the server sent a body

#endregion
#region PARSERS ---------------------------------------------------------------

def _expect_eol ( tok: Tokenizer ) -> Generator[Event,None,None]:
	token = yield from tok.next_token()
	if token.type is not TokenType.EOL:
		raise ParseError ( 'EOL', token, token.lineno )


def _skip_line ( tok: Tokenizer ) -> Generator[Event,None,None]:
	# leaves the EOL for the caller
	while True:
		token = yield from tok.next_token()
		if token.type in ( TokenType.EOL, TokenType.EOF ):
			tok.push_back ( token )
			return
		if token.is_char ( '{' ): # don't lex a literal's octets as tokens
			tok.push_back ( token )
			yield from parse_string ( tok )


def _parse_number ( tok: Tokenizer ) -> Generator[Event,None,int]:
	token = yield from tok.next_token()
	if token.type is TokenType.NUMBER:
		assert isinstance ( token.value, int )
		return token.value
	if token.is_string_start():
		tok.push_back ( token )
		text = yield from parse_string ( tok )
		if _r_number.match ( text ):
			return int ( text )
	raise ParseError ( 'NUMBER', token, token.lineno )


def _parse_words ( tok: Tokenizer ) -> Generator[Event,None,Tuple[str,...]]:
	# space separated list, duplicates dropped, order kept
	text = yield from parse_string ( tok )
	return tuple ( dict.fromkeys ( text.split() ) )


def parse_response ( tok: Tokenizer ) -> Generator[Event,None,Response]:
	'''
	response-oknobye = ("OK" / "NO" / "BYE") [SP "(" resp-code ")"] [SP string] CRLF
	'''
	log = logger.getChild ( 'parse_response' )
	token = yield from tok.next_token()
	if token.type is not TokenType.ATOM:
		raise ParseError ( 'WORD', token, token.lineno )
	try:
		rtype = ResponseType[str ( token.value ).upper()]
	except KeyError:
		raise ParseError ( 'OK, NO or BYE', token, token.lineno,
			f'Invalid response type: {token.value} at line {token.lineno}',
		) from None
	code: Opt[ResponseCode] = None
	subcodes: Tuple[str,...] = ()
	param: Opt[str] = None
	message: Opt[str] = None

	token = yield from tok.next_token()
	if token.is_char ( '(' ):
		token = yield from tok.next_token()
		if token.type is not TokenType.ATOM:
			raise ParseError ( 'response code', token, token.lineno )
		subcodes = tuple ( str ( token.value ).split ( '/' ) )
		code = ResponseCode.parse ( subcodes[0] )
		if code.has_param:
			param = yield from parse_string ( tok )
		token = yield from tok.next_token()
		if code is ResponseCode.EXTENSION:
			# extension codes may carry arguments we don't understand
			while not token.is_char ( ')' ) and token.type not in ( TokenType.EOL, TokenType.EOF ):
				if token.is_char ( '{' ):
					tok.push_back ( token )
					yield from parse_string ( tok )
				token = yield from tok.next_token()
		if not token.is_char ( ')' ):
			raise ParseError ( ')', token, token.lineno )
		token = yield from tok.next_token()

	if token.type is not TokenType.EOL:
		tok.push_back ( token )
		message = yield from parse_string ( tok )
		token = yield from tok.next_token()
	if token.type is not TokenType.EOL:
		raise ParseError ( 'EOL', token, token.lineno )

	response = Response ( rtype, code, subcodes, param, message )
	log.debug ( f'{response=}' )
	return response


def parse_payload_response ( tok: Tokenizer ) -> Generator[Event,None,Tuple[Opt[str],Response]]:
	'''
	response-getscript = [string CRLF] response-oknobye
	'''
	token = yield from tok.next_token()
	tok.push_back ( token )
	if token.type is TokenType.ATOM:
		response = yield from parse_response ( tok )
		return None, response
	payload = yield from parse_string ( tok )
	yield from _expect_eol ( tok )
	response = yield from parse_response ( tok )
	return payload, response


def parse_script_list ( tok: Tokenizer ) -> Generator[Event,None,Tuple[List[SieveScript],Response]]:
	'''
	response-listscripts = *(sieve-name [SP "ACTIVE"] CRLF) response-oknobye
	'''
	scripts: List[SieveScript] = []
	while True:
		token = yield from tok.next_token()
		tok.push_back ( token )
		if token.type is TokenType.ATOM:
			response = yield from parse_response ( tok )
			return scripts, response
		if not token.is_string_start():
			raise ParseError ( 'DQUOTE, { or WORD', token, token.lineno )
		name = yield from parse_string ( tok )
		active = False
		token = yield from tok.next_token()
		if token.type is TokenType.ATOM:
			if str ( token.value ).upper() != 'ACTIVE':
				raise ParseError ( 'ACTIVE', token, token.lineno )
			active = True
			token = yield from tok.next_token()
		if token.type is not TokenType.EOL:
			raise ParseError ( 'EOL', token, token.lineno )
		scripts.append ( SieveScript ( name, '', active ) )


def parse_capabilities ( tok: Tokenizer ) -> Generator[Event,None,Tuple[ServerCapabilities,Response]]:
	'''
	response-capability = *(single-capability) response-oknobye
	single-capability = capability-name [SP string] CRLF

	an unquoted word (the OK/NO/BYE) ends the capability block
	'''
	log = logger.getChild ( 'parse_capabilities' )
	fields: Dict[str,Any] = {}
	unknown: List[str] = []
	while True:
		token = yield from tok.next_token()
		tok.push_back ( token )
		if token.type is TokenType.ATOM:
			response = yield from parse_response ( tok )
			return ServerCapabilities ( unknown = tuple ( unknown ), **fields ), response
		if not token.is_string_start():
			raise ParseError ( 'DQUOTE, { or WORD', token, token.lineno )
		name = yield from parse_string ( tok )
		key = name.upper()
		if key == 'IMPLEMENTATION':
			fields['implementation'] = yield from parse_string ( tok )
		elif key == 'SASL':
			fields['sasl'] = yield from _parse_words ( tok )
		elif key == 'SIEVE':
			fields['extensions'] = frozenset ( ( yield from _parse_words ( tok ) ) )
		elif key == 'MAXREDIRECTS':
			fields['max_redirects'] = yield from _parse_number ( tok )
		elif key == 'NOTIFY':
			words = yield from _parse_words ( tok )
			fields['notify'] = frozenset ( word.lower() for word in words )
		elif key == 'STARTTLS':
			fields['starttls'] = True
		elif key == 'LANGUAGE':
			fields['language'] = yield from parse_string ( tok )
		elif key == 'VERSION':
			fields['version'] = yield from parse_string ( tok )
		elif key == 'OWNER':
			fields['owner'] = yield from parse_string ( tok )
		else:
			log.debug ( f'ignoring unknown capability {name!r}' )
			unknown.append ( name )
			yield from _skip_line ( tok )
		yield from _expect_eol ( tok )

#endregion
#region TLS IDENTITY ----------------------------------------------------------

def _same_host ( identity: str, hostname: str ) -> bool:
	# exact match only, no wildcards
	try:
		return ipaddress.ip_address ( identity ) == ipaddress.ip_address ( hostname )
	except ValueError:
		return identity.lower() == hostname.lower()


def certificate_identities ( der: bytes ) -> Tuple[List[str],List[str]]:
	'''
	returns ( subjectAltName DNS/IP entries, subject commonName entries )
	'''
	cert = x509.load_der_x509_certificate ( der )
	alt_names: List[str] = []
	try:
		san = cert.extensions.get_extension_for_class ( x509.SubjectAlternativeName ).value
	except x509.ExtensionNotFound:
		pass
	else:
		alt_names.extend ( san.get_values_for_type ( x509.DNSName ) )
		alt_names.extend ( str ( ip ) for ip in san.get_values_for_type ( x509.IPAddress ) )
	common_names = [
		b2s ( attr.value, 'utf-8' ) if isinstance ( attr.value, bytes ) else attr.value
		for attr in cert.subject.get_attributes_for_oid ( NameOID.COMMON_NAME )
	]
	return alt_names, common_names


def verify_server_identity ( certificates: Seq[bytes], hostname: str ) -> None:
	'''
	RFC 5804 2.2.1: the server name we connected to has to show up in the
	certificate, as a subjectAltName or failing that as the subject's CN

	raises ServerIdentityError
	'''
	log = logger.getChild ( 'verify_server_identity' )
	seen: List[str] = []
	for der in certificates:
		try:
			alt_names, common_names = certificate_identities ( der )
		except ValueError as e:
			log.warning ( f'unable to decode peer certificate: {e!r}' )
			continue
		if any ( _same_host ( name, hostname ) for name in alt_names ):
			return
		if any ( _same_host ( name, hostname ) for name in common_names ):
			return
		seen.extend ( alt_names )
		seen.extend ( common_names )
	raise ServerIdentityError ( hostname, seen )

#endregion
#region EVENTS ----------------------------------------------------------------

class StartTlsBeginEvent ( Event ):
	# the driver upgrades the transport (and checks the server identity) when it sees this
	pass

#endregion
#region REQUESTS --------------------------------------------------------------

class Request ( RequestT[ResponseT] ):
	def _client_protocol ( self, client: ClientProtocol ) -> RequestProtocolGenerator:
		assert isinstance ( client, Client )
		yield from self.client_protocol ( client )

	@abstractmethod
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		cls = self.__class__
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.client_protocol()' )


class SimpleRequest ( Request[Response] ):
	# one command line in, one response-oknobye out
	responsecls = Response
	verb: str

	def arguments ( self, client: Client ) -> Seq[bytes]:
		return ()

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client.send_command ( self.verb, *self.arguments ( client ) )
		response = yield from client.read_response()
		raise response


class GreetingRequest ( Request[CapabilityResponse] ):
	responsecls = CapabilityResponse

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		response = yield from client.read_capabilities()
		raise response


class CapabilityRequest ( Request[CapabilityResponse] ):
	responsecls = CapabilityResponse

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client.send_command ( 'CAPABILITY' )
		response = yield from client.read_capabilities()
		raise response


class StartTlsRequest ( Request[Response] ):
	responsecls = Response

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		#log = logger.getChild ( 'StartTlsRequest.client_protocol' )
		assert not client.tls, 'TLS is already active'
		yield from client.send_command ( 'STARTTLS' )
		response = yield from client.read_response()
		if not response.is_ok:
			raise response
		yield from StartTlsBeginEvent().go()
		client.tls = True
		client.reset_stream()
		# the server re-advertises, things like SASL mechanisms may have changed
		response = yield from client.read_capabilities()
		raise response


class AuthenticateRequest ( Request[Response] ):
	'''
	AUTHENTICATE mechanism [initial-response], then base64 challenges from
	the server answered by base64 responses until the server sends its
	status line
	'''
	responsecls = Response

	def __init__ ( self, authenticator: Authenticator ) -> None:
		self.authenticator = authenticator

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.authenticator.mechanism_name()!r})'

	def _evaluate ( self, challenge: bytes ) -> bytes:
		try:
			return self.authenticator.evaluate_challenge ( challenge )
		except Exception as e:
			raise AuthenticationError (
				f'{self.authenticator.mechanism_name()} mechanism failed: {e!r}'
			) from e

	def _abort ( self, client: Client, e: Exception ) -> RequestProtocolGenerator:
		# RFC 5804 2.1: a client response of "*" cancels the exchange
		yield from client.send_line ( quote_string ( '*' ) )
		response = yield from client.read_response()
		raise AuthenticationError ( str ( e ), response ) from e

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		log = logger.getChild ( 'AuthenticateRequest.client_protocol' )
		auth = self.authenticator
		tok = client.tokenizer
		try:
			mechanism = client.quote ( auth.mechanism_name() )
			if auth.has_initial_response():
				initial = b64_encode ( self._evaluate ( b'' ) )
				yield from client.send_command ( 'AUTHENTICATE', mechanism, client.string ( initial ), secret = True )
			else:
				yield from client.send_command ( 'AUTHENTICATE', mechanism )

			while not auth.is_complete():
				token = yield from tok.next_token()
				tok.push_back ( token )
				if token.type is TokenType.ATOM:
					break # the server's status line is authoritative
				if not token.is_string_start():
					raise ParseError ( 'DQUOTE/WORD', token, token.lineno )
				challenge = yield from parse_string ( tok )
				yield from _expect_eol ( tok )
				try:
					reply = self._evaluate ( b64_decode ( challenge ) )
				except ( AuthenticationError, ValueError ) as e:
					yield from self._abort ( client, e )
				log.debug ( f'answering {auth.mechanism_name()} challenge' )
				yield from client.send_line ( client.string ( b64_encode ( reply ) ), secret = True )

			response = yield from client.read_response()
			if (
				response.is_ok
				and response.code is ResponseCode.SASL
				and response.param is not None
				and not auth.is_complete()
			):
				# additional data with success, RFC 5804 2.1
				try:
					self._evaluate ( b64_decode ( response.param ) )
				except ( AuthenticationError, ValueError ) as e:
					raise AuthenticationError ( str ( e ), response ) from e
			raise response
		finally:
			auth.dispose()


class ListScriptsRequest ( Request[ListScriptsResponse] ):
	responsecls = ListScriptsResponse

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client.send_command ( 'LISTSCRIPTS' )
		scripts, response = yield from parse_script_list ( client.tokenizer )
		r = ListScriptsResponse.wrap ( response )
		r.scripts = scripts
		raise r


class HaveSpaceRequest ( SimpleRequest ):
	verb = 'HAVESPACE'

	def __init__ ( self, name: str, size: int ) -> None:
		assert isinstance ( size, int ) and size >= 0, f'invalid {size=}'
		self.name = name
		self.size = size

	def arguments ( self, client: Client ) -> Seq[bytes]:
		return client.string ( self.name ), s2b ( str ( self.size ) )


class PutScriptRequest ( SimpleRequest ):
	verb = 'PUTSCRIPT'

	def __init__ ( self, name: str, body: str ) -> None:
		self.name = name
		self.body = body

	def arguments ( self, client: Client ) -> Seq[bytes]:
		return client.string ( self.name ), client.literal ( self.body )

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.name!r})'


class GetScriptRequest ( Request[GetScriptResponse] ):
	responsecls = GetScriptResponse

	def __init__ ( self, name: str ) -> None:
		self.name = name

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client.send_command ( 'GETSCRIPT', client.string ( self.name ) )
		body, response = yield from parse_payload_response ( client.tokenizer )
		r = GetScriptResponse.wrap ( response )
		r.script = None if body is None else SieveScript ( self.name, body )
		raise r


class DeleteScriptRequest ( SimpleRequest ):
	verb = 'DELETESCRIPT'

	def __init__ ( self, name: str ) -> None:
		self.name = name

	def arguments ( self, client: Client ) -> Seq[bytes]:
		return ( client.string ( self.name ), )


class SetActiveRequest ( SimpleRequest ):
	verb = 'SETACTIVE'

	def __init__ ( self, name: str ) -> None:
		self.name = name # '' deactivates all scripts

	def arguments ( self, client: Client ) -> Seq[bytes]:
		return ( client.string ( self.name ), )


class RenameScriptRequest ( SimpleRequest ):
	verb = 'RENAMESCRIPT'

	def __init__ ( self, old_name: str, new_name: str ) -> None:
		self.old_name = old_name
		self.new_name = new_name

	def arguments ( self, client: Client ) -> Seq[bytes]:
		return client.string ( self.old_name ), client.string ( self.new_name )


class CheckScriptRequest ( SimpleRequest ):
	verb = 'CHECKSCRIPT'

	def __init__ ( self, body: str ) -> None:
		self.body = body

	def arguments ( self, client: Client ) -> Seq[bytes]:
		return ( client.literal ( self.body ), )


class NoOpRequest ( SimpleRequest ):
	verb = 'NOOP'

	def __init__ ( self, tag: Opt[str] = None ) -> None:
		self.tag = tag # echoed back in a (TAG "...") response code

	def arguments ( self, client: Client ) -> Seq[bytes]:
		if self.tag is None:
			return ()
		return ( client.string ( self.tag ), )


class LogoutRequest ( SimpleRequest ):
	verb = 'LOGOUT'

	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client.send_command ( self.verb )
		response = yield from client.read_response()
		client.closed = True # the server closes the connection after answering
		raise response

#endregion
#region CLIENT ----------------------------------------------------------------

class Client ( ClientProtocol ):
	'''
	protocol state of one connection: the tokenizer over the current stream,
	the charset and the last capabilities the server advertised
	'''
	capabilities: Opt[ServerCapabilities] = None
	closed: bool = False # set by BYE or LOGOUT

	def __init__ ( self, tls: bool, encoding: str = 'utf-8' ) -> None:
		super().__init__ ( tls )
		self.encoding = encoding
		self.tokenizer = Tokenizer ( encoding )

	def send ( self, request: BaseRequest ) -> Iterator[Event]:
		if self.closed:
			raise Closed ( 'server closed the session' )
		yield from super().send ( request )

	def _feed ( self, data: bytes ) -> None:
		if not data:
			self.closed = True
		self.tokenizer.feed ( data )

	def _run_protocol ( self ) -> Iterator[Event]:
		request = self.request
		yield from super()._run_protocol()
		response = request.base_response if request is not None else None
		if isinstance ( response, Response ) and response.is_bye:
			self.closed = True

	def abandon ( self ) -> None:
		# the driver lost the stream mid-request, nothing more can be sent
		self._finish()
		self.closed = True

	def reset_stream ( self ) -> None:
		# STARTTLS: anything still buffered arrived in plaintext, throw it away
		self.tokenizer = Tokenizer ( self.encoding )

	def quote ( self, s: str ) -> bytes:
		return quote_string ( s, self.encoding )

	def literal ( self, s: str ) -> bytes:
		return literal_string ( s, self.encoding )

	def string ( self, s: str ) -> bytes:
		return encode_string ( s, self.encoding )

	def send_line ( self, line: bytes, secret: bool = False ) -> Iterator[Event]:
		yield from SendDataEvent ( line + b'\r\n', secret = secret ).go()

	def send_command ( self, verb: str, *args: bytes, secret: bool = False ) -> Iterator[Event]:
		assert verb == verb.upper() and ' ' not in verb, f'invalid {verb=}'
		yield from self.send_line ( b' '.join ( ( s2b ( verb ), *args ) ), secret = secret )

	def read_response ( self ) -> Generator[Event,None,Response]:
		return ( yield from parse_response ( self.tokenizer ) )

	def read_capabilities ( self ) -> Generator[Event,None,CapabilityResponse]:
		capabilities, response = yield from parse_capabilities ( self.tokenizer )
		self.capabilities = capabilities
		r = CapabilityResponse.wrap ( response )
		r.capabilities = capabilities
		return r

#endregion
