'''
client side SASL mechanisms for AUTHENTICATE

an Authenticator only deals in raw octets, the base64 framing belongs to the
protocol. Anything with this interface can be handed to AuthenticateRequest,
the classes here just cover the mechanisms servers commonly offer.
'''
from __future__ import annotations

# python imports:
from abc import ABCMeta, abstractmethod
import hashlib
import hmac
import logging
from typing import Callable, Dict, Iterable, Optional as Opt, Type

# sieve_proto imports:
from util import b2s, s2b

logger = logging.getLogger ( __name__ )


class Authenticator ( metaclass = ABCMeta ):
	@abstractmethod
	def mechanism_name ( self ) -> str:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.mechanism_name()' )

	@abstractmethod
	def has_initial_response ( self ) -> bool:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.has_initial_response()' )

	@abstractmethod
	def evaluate_challenge ( self, challenge: bytes ) -> bytes:
		'''
		answer one server challenge (b'' for the initial response)

		raising aborts the exchange
		'''
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.evaluate_challenge()' )

	@abstractmethod
	def is_complete ( self ) -> bool:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.is_complete()' )

	def dispose ( self ) -> None:
		# called exactly once when the exchange is over, however it ended
		pass

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.mechanism_name()!r})'


_auth_plugins: Dict[str,Type[PasswordAuthenticator]] = {}

def auth_plugin ( name: str ) -> Callable[[Type[PasswordAuthenticator]],Type[PasswordAuthenticator]]:
	def registrar ( cls: Type[PasswordAuthenticator] ) -> Type[PasswordAuthenticator]:
		global _auth_plugins
		assert name == name.upper() and ' ' not in name and len ( name ) <= 20, f'invalid auth mechanism {name=}'
		assert name not in _auth_plugins, f'duplicate auth mechanism {name!r}'
		cls.mechanism = name
		_auth_plugins[name] = cls
		return cls
	return registrar


def mechanisms() -> Iterable[str]:
	return _auth_plugins.keys()


class PasswordAuthenticator ( Authenticator ):
	mechanism: str
	step: int = 0

	def __init__ ( self, uid: str, pwd: str, authzid: str = '' ) -> None:
		self.uid = str ( uid )
		self.pwd = str ( pwd )
		self.authzid = str ( authzid )
		assert len ( self.uid ) > 0

	def mechanism_name ( self ) -> str:
		return self.mechanism

	def dispose ( self ) -> None:
		self.pwd = ''

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.uid!r})'


@auth_plugin ( 'PLAIN' )
class PlainAuthenticator ( PasswordAuthenticator ):
	# RFC 4616: authzid NUL authcid NUL passwd, sent as the initial response

	def has_initial_response ( self ) -> bool:
		return True

	def evaluate_challenge ( self, challenge: bytes ) -> bytes:
		if self.step:
			raise ValueError ( f'unexpected challenge after PLAIN response: {challenge!r}' )
		self.step += 1
		return s2b ( f'{self.authzid}\0{self.uid}\0{self.pwd}', 'utf-8' )

	def is_complete ( self ) -> bool:
		return self.step > 0


@auth_plugin ( 'LOGIN' )
class LoginAuthenticator ( PasswordAuthenticator ):
	# draft-murchison-sasl-login: the server prompts for the username, then the password

	def has_initial_response ( self ) -> bool:
		return False

	def evaluate_challenge ( self, challenge: bytes ) -> bytes:
		log = logger.getChild ( 'LoginAuthenticator.evaluate_challenge' )
		log.debug ( f'{self.step=} prompt={b2s(challenge,"utf-8","replace")!r}' )
		self.step += 1
		if self.step == 1:
			return s2b ( self.uid, 'utf-8' )
		if self.step == 2:
			return s2b ( self.pwd, 'utf-8' )
		raise ValueError ( f'unexpected third LOGIN challenge: {challenge!r}' )

	def is_complete ( self ) -> bool:
		return self.step >= 2


@auth_plugin ( 'CRAM-MD5' )
class CramMD5Authenticator ( PasswordAuthenticator ):
	# RFC 2195: username SP hex(hmac-md5(password, challenge))

	def has_initial_response ( self ) -> bool:
		return False

	def evaluate_challenge ( self, challenge: bytes ) -> bytes:
		if self.step:
			raise ValueError ( f'unexpected second CRAM-MD5 challenge: {challenge!r}' )
		if not challenge:
			raise ValueError ( 'CRAM-MD5 requires a non-empty challenge' )
		self.step += 1
		digest = hmac.new ( s2b ( self.pwd, 'utf-8' ), challenge, hashlib.md5 ).hexdigest()
		return s2b ( f'{self.uid} {digest}', 'utf-8' )

	def is_complete ( self ) -> bool:
		return self.step > 0


def create_authenticator ( offered: Iterable[str], uid: str, pwd: str ) -> Opt[Authenticator]:
	'''
	first mechanism in the server's list that we know how to do, or None
	'''
	for name in offered:
		plugincls = _auth_plugins.get ( name.upper() )
		if plugincls is not None:
			return plugincls ( uid, pwd )
	return None
