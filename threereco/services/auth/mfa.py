from __future__ import annotations

import asyncio
import base64
import hashlib
import io
import logging
import re
import secrets

import pyotp
import qrcode

from threereco.core.config import get_settings
from threereco.core.errors import BadRequestError, UnauthorizedError
from threereco.domain.models import User
from threereco.persistence.transaction import AuditedTransaction
from threereco.services import entities
from threereco.services.tables import USERS


logger = logging.getLogger(__name__)

TOTP_DIGITS = 6
TOTP_INTERVAL_S = 30
SECRET_BYTES = 32
_CODE_PATTERN = re.compile(r"^\d{6}$")


def generate_secret() -> str:
    # 32 random bytes, base32 without padding as authenticator apps expect.
    return base64.b32encode(secrets.token_bytes(SECRET_BYTES)).decode("ascii").rstrip("=")


def build_totp(secret: str) -> pyotp.TOTP:
    return pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL_S, digest=hashlib.sha1)


def provisioning_uri(secret: str, email: str) -> str:
    return build_totp(secret).provisioning_uri(name=email, issuer_name=get_settings().mfa_issuer)


def render_qr_png(uri: str) -> bytes:
    image = qrcode.make(uri)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def verify_code_sync(secret: str, code: str) -> bool:
    # Accept one step of clock drift either side.
    return build_totp(secret).verify(code, valid_window=1)


async def enroll(tx: AuditedTransaction, user: User) -> bytes:
    """Ensure the user has a TOTP secret and return its provisioning QR code as PNG.

    Secret generation is never written to the audit log.
    """
    if user.mfa_secret is None:
        secret = generate_secret()
        await entities.update_row(
            tx,
            USERS,
            user.id,
            {"mfa_secret": secret.encode("ascii")},
            ignore_audit=True,
            trusted=True,
        )
        user.mfa_secret = secret.encode("ascii")
        logger.info("mfa_secret_generated user_id=%s", user.id)
    uri = provisioning_uri(user.mfa_secret.decode("ascii"), user.email)
    return await asyncio.to_thread(render_qr_png, uri)


async def verify(tx: AuditedTransaction, user: User, code: str | None) -> None:
    if not code or not _CODE_PATTERN.match(code):
        raise BadRequestError(
            "Unable to verify Multi-Factor Authentication (MFA) status. Please provide a valid MFA code."
        )
    if user.mfa_secret is None:
        raise BadRequestError(
            "Unable to verify Multi-Factor Authentication (MFA) status. "
            "Please ensure MFA is enabled for your account."
        )
    valid = await asyncio.to_thread(verify_code_sync, user.mfa_secret.decode("ascii"), code)
    if not valid:
        logger.warning("mfa_verify_failed user_id=%s", user.id)
        raise UnauthorizedError("Invalid Multi-Factor Authentication code. Please try again.")
    await entities.update_row(
        tx,
        USERS,
        user.id,
        {"mfa_enabled": True, "mfa_verified": True},
        ignore_audit=True,
        trusted=True,
    )
    user.mfa_enabled = True
    user.mfa_verified = True
    logger.info("mfa_verified user_id=%s", user.id)
