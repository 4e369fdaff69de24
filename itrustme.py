import ssl
from typing import List, Optional as Opt

import trustme # pip install trustme

class ServerOnly:
	def __init__ ( self, *,
		server_hostname: str, # ex: 'test-host.example.org'
	) -> None:
		self.server_hostname = server_hostname
		self.ca = trustme.CA()
		self.server_cert = self.ca.issue_cert ( self.server_hostname )

	def server_context ( self ) -> ssl.SSLContext:
		ctx = ssl.create_default_context ( ssl.Purpose.CLIENT_AUTH )
		self.server_cert.configure_cert ( ctx )
		ctx.verify_mode = ssl.CERT_NONE
		return ctx

	def server_chain_der ( self ) -> List[bytes]:
		return [ ssl.PEM_cert_to_DER_cert ( blob.bytes().decode ( 'ascii' ) ) for blob in self.server_cert.cert_chain_pems ]


def issue_der ( ca: trustme.CA, *identities: str, common_name: Opt[str] = None ) -> bytes:
	cert = ca.issue_cert ( *identities, common_name = common_name )
	return ssl.PEM_cert_to_DER_cert ( cert.cert_chain_pems[0].bytes().decode ( 'ascii' ) )
