"""
Authentication module — Supports certificate-based and delegated interactive auth.
Uses MSAL for token acquisition against Microsoft Identity Platform, one
token per resource (Exchange Online admin API, Microsoft Graph).
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption
from cryptography.hazmat.primitives.hashes import SHA1
import msal

from ..config import AuthConfig

logger = logging.getLogger("m365_compliance_engine.auth")


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class Authenticator:
    """
    Handles MSAL-based authentication for Exchange Online and Graph.
    Supports:
      - Certificate-based app-only authentication
      - Delegated interactive authentication (device code flow)
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._app: Optional[msal.ClientApplication] = None
        self._tokens: dict[str, str] = {}

    async def acquire_token(self, scopes: list[str]) -> str:
        """Acquire an access token for the given resource scopes."""
        key = " ".join(scopes)
        if key in self._tokens:
            return self._tokens[key]

        if self.config.mode == "certificate":
            token = self._acquire_certificate_token(scopes)
        elif self.config.mode == "delegated":
            token = self._acquire_delegated_token(scopes)
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")
        self._tokens[key] = token
        return token

    def _certificate_app(self) -> msal.ConfidentialClientApplication:
        """Load the PFX once and build the confidential client."""
        if self._app is not None:
            return self._app  # type: ignore[return-value]

        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Loading certificate for app-only authentication...")

        cert_path = cert_config.certificate_path
        password = cert_config.certificate_password
        if not password:
            password = os.environ.get("M365_CERT_PASSWORD", "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        try:
            with open(cert_path, "r") as f:
                cert_base64 = f.read().strip()

            cert_bytes = base64.b64decode(cert_base64)
            password_bytes = password.encode("utf-8") if password else None

            private_key, certificate, _ = pkcs12.load_key_and_certificates(
                cert_bytes, password_bytes
            )
            if private_key is None or certificate is None:
                raise AuthenticationError("PFX does not contain a key and certificate.")

            private_key_pem = private_key.private_bytes(
                Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
            ).decode("utf-8")
            thumbprint = certificate.fingerprint(SHA1()).hex()

            logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")

        except FileNotFoundError:
            raise AuthenticationError(f"Certificate file not found: {cert_path}.")
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Failed to load certificate: {e}")

        self._app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=f"https://login.microsoftonline.com/{cert_config.tenant_id}",
            client_credential={
                "thumbprint": thumbprint,
                "private_key": private_key_pem,
            },
        )
        return self._app  # type: ignore[return-value]

    def _acquire_certificate_token(self, scopes: list[str]) -> str:
        """Acquire token using certificate-based client credentials."""
        app = self._certificate_app()
        result = app.acquire_token_for_client(scopes=scopes)

        if "access_token" in result:
            logger.info(f"Certificate authentication successful for {scopes[0]}.")
            return result["access_token"]
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"Certificate auth failed: {error}")

    def _acquire_delegated_token(self, scopes: list[str]) -> str:
        """Acquire token using delegated (device code) flow."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        if self._app is None:
            self._app = msal.PublicClientApplication(
                client_id=deleg_config.client_id,
                authority=f"https://login.microsoftonline.com/{deleg_config.tenant_id}",
            )
        app = self._app

        # A second resource can usually be served silently from the cached account
        accounts = app.get_accounts()
        if accounts:
            result = app.acquire_token_silent(scopes, account=accounts[0])
            if result and "access_token" in result:
                return result["access_token"]

        logger.info("Initiating device code authentication flow...")
        flow = app.initiate_device_flow(scopes=scopes)  # type: ignore[attr-defined]
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        result = app.acquire_token_by_device_flow(flow)  # type: ignore[attr-defined]

        if "access_token" in result:
            logger.info("Delegated authentication successful.")
            return result["access_token"]
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"Delegated auth failed: {error}")
