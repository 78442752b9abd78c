"""
Authentication module — Supports delegated device-code and certificate-based auth.
Uses MSAL for token acquisition against Microsoft Identity Platform.
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
import requests

from ..config import AuthConfig

logger = logging.getLogger("m365_license_audit.auth")

# App-only tokens carry whatever the registration was granted
APP_SCOPES = ["https://graph.microsoft.com/.default"]

AUTHORITY_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}"


class AuthenticationError(Exception):
    """Raised when authentication fails or is declined."""
    pass


class Authenticator:
    """
    Handles MSAL-based authentication for Microsoft Graph.
    Supports:
      - Delegated interactive authentication (device code flow)
      - Certificate-based app-only authentication

    close() tears the session down; it is safe to call on any path.
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None
        self._app: Optional[msal.ClientApplication] = None

    def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        # MSAL talks to the identity platform over requests
        try:
            if self.config.mode == "delegated":
                return self._acquire_delegated_token()
            elif self.config.mode == "certificate":
                return self._acquire_certificate_token()
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(
                f"Could not reach the identity platform: {type(e).__name__}: {e}"
            ) from e
        raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_delegated_token(self) -> str:
        """Acquire token using delegated (device code) flow."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        logger.info(f"Initiating device code flow with scopes: {', '.join(deleg_config.scopes)}")

        try:
            app = msal.PublicClientApplication(
                client_id=deleg_config.client_id,
                authority=AUTHORITY_TEMPLATE.format(tenant_id=deleg_config.tenant_id),
            )
        except ValueError as e:
            raise AuthenticationError(f"Invalid tenant or authority: {e}")
        self._app = app

        flow = app.initiate_device_flow(scopes=deleg_config.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        result = app.acquire_token_by_device_flow(flow)
        return self._token_from_result(result, "Delegated")

    def _acquire_certificate_token(self) -> str:
        """Acquire token using certificate-based client credentials."""
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")

        password = cert_config.certificate_password
        if not password:
            password = os.environ.get("M365_CERT_PASSWORD", "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        private_key_pem, thumbprint = load_pfx_credential(cert_config.certificate_path, password)
        logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")

        try:
            app = msal.ConfidentialClientApplication(
                client_id=cert_config.client_id,
                authority=AUTHORITY_TEMPLATE.format(tenant_id=cert_config.tenant_id),
                client_credential={
                    "thumbprint": thumbprint,
                    "private_key": private_key_pem,
                },
            )
        except ValueError as e:
            raise AuthenticationError(f"Invalid tenant or authority: {e}")
        self._app = app

        result = app.acquire_token_for_client(scopes=APP_SCOPES)
        return self._token_from_result(result, "Certificate")

    def _token_from_result(self, result: dict, label: str) -> str:
        if "access_token" in result:
            self._access_token = result["access_token"]
            logger.info(f"{label} authentication successful.")
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    def close(self) -> None:
        """Forget the access token and sign cached accounts out of MSAL."""
        if self._app is not None:
            for account in self._app.get_accounts():
                self._app.remove_account(account)
            logger.info("Authenticated session closed.")
        self._app = None
        self._access_token = None

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token


def load_pfx_credential(cert_path: str, password: str) -> tuple[str, str]:
    """
    Load a base64-encoded PFX file and return (private key PEM, SHA1 thumbprint).
    """
    try:
        with open(cert_path, "r") as f:
            cert_base64 = f.read().strip()

        cert_bytes = base64.b64decode(cert_base64)
        password_bytes = password.encode("utf-8") if password else None

        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            cert_bytes, password_bytes
        )
    except FileNotFoundError:
        raise AuthenticationError(
            f"Certificate file not found: {cert_path}. "
            "Pass --cert-path or set certificate_path in the config file."
        )
    except Exception as e:
        raise AuthenticationError(f"Failed to load certificate: {e}")

    if private_key is None or certificate is None:
        raise AuthenticationError(f"PFX file {cert_path} lacks a private key or certificate.")

    private_key_pem = private_key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    ).decode("utf-8")
    thumbprint = certificate.fingerprint(SHA1()).hex()
    return private_key_pem, thumbprint
