from typing import Optional

import httpx

from app.core.config import Settings, logger


async def verify_human_check(
    settings: Settings,
    token: Optional[str],
    remote_ip: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """
    Verify a reCAPTCHA token with the verification endpoint.

    Fail-closed: a missing secret or token, a non-200 answer, a negative answer,
    a network error or a timeout all return False.
    """
    secret_key = (settings.RECAPTCHA_SECRET_KEY or "").strip()
    if not secret_key:
        logger.warning("[recaptcha] RECAPTCHA_SECRET_KEY not configured")
        return False
    if not token:
        logger.warning("[recaptcha] No token provided")
        return False

    try:
        async with httpx.AsyncClient(
            timeout=settings.HUMAN_CHECK_TIMEOUT_SECONDS,
            transport=transport,
        ) as client:
            response = await client.post(
                settings.RECAPTCHA_VERIFY_URL,
                data={
                    "secret": secret_key,
                    "response": token,
                    "remoteip": remote_ip or "",
                },
            )
    except httpx.HTTPError as exc:
        logger.error(f"[recaptcha] Verification request error: {exc!r}")
        return False

    if response.status_code != 200:
        logger.error(f"[recaptcha] Verification request failed: {response.status_code}")
        return False

    try:
        result = response.json()
    except ValueError:
        logger.error("[recaptcha] Verification answer is not JSON")
        return False

    success = result.get("success") is True
    if not success:
        logger.warning(f"[recaptcha] Verification failed: {result.get('error-codes', [])}")
    return success
