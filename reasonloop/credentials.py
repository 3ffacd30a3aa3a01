"""Credential types and helpers for assembling per-run secret mappings."""

import os
from enum import Enum
from typing import Any, Mapping


class CredentialType(str, Enum):
    """Known credential types supplied by the credential store."""

    OPENAI_CRED = "OPENAI_CRED"
    GOOGLE_GEMINI_CRED = "GOOGLE_GEMINI_CRED"
    ANTHROPIC_CRED = "ANTHROPIC_CRED"
    OPENROUTER_CRED = "OPENROUTER_CRED"
    FIRECRAWL_API_KEY = "FIRECRAWL_API_KEY"
    DATABASE_CRED = "DATABASE_CRED"
    SLACK_CRED = "SLACK_CRED"
    RESEND_CRED = "RESEND_CRED"
    CLOUDFLARE_R2_ACCESS_KEY = "CLOUDFLARE_R2_ACCESS_KEY"
    CLOUDFLARE_R2_SECRET_KEY = "CLOUDFLARE_R2_SECRET_KEY"
    CLOUDFLARE_R2_ACCOUNT_ID = "CLOUDFLARE_R2_ACCOUNT_ID"
    APIFY_CRED = "APIFY_CRED"
    GOOGLE_DRIVE_CRED = "GOOGLE_DRIVE_CRED"
    GMAIL_CRED = "GMAIL_CRED"
    GOOGLE_SHEETS_CRED = "GOOGLE_SHEETS_CRED"
    GOOGLE_CALENDAR_CRED = "GOOGLE_CALENDAR_CRED"
    FUB_CRED = "FUB_CRED"
    GITHUB_TOKEN = "GITHUB_TOKEN"


# Environment variables holding system-level secrets. OAuth-backed types have
# no env equivalent and are only supplied by the credential store.
CREDENTIAL_ENV_MAP: dict[CredentialType, str] = {
    CredentialType.OPENAI_CRED: "OPENAI_API_KEY",
    CredentialType.GOOGLE_GEMINI_CRED: "GOOGLE_API_KEY",
    CredentialType.ANTHROPIC_CRED: "ANTHROPIC_API_KEY",
    CredentialType.OPENROUTER_CRED: "OPENROUTER_API_KEY",
    CredentialType.FIRECRAWL_API_KEY: "FIRECRAWL_API_KEY",
    CredentialType.DATABASE_CRED: "DATABASE_URL",
    CredentialType.SLACK_CRED: "SLACK_TOKEN",
    CredentialType.RESEND_CRED: "RESEND_API_KEY",
    CredentialType.CLOUDFLARE_R2_ACCESS_KEY: "CLOUDFLARE_R2_ACCESS_KEY",
    CredentialType.CLOUDFLARE_R2_SECRET_KEY: "CLOUDFLARE_R2_SECRET_KEY",
    CredentialType.CLOUDFLARE_R2_ACCOUNT_ID: "CLOUDFLARE_R2_ACCOUNT_ID",
    CredentialType.APIFY_CRED: "APIFY_API_TOKEN",
    CredentialType.GITHUB_TOKEN: "GITHUB_TOKEN",
}


def credential_key(value: CredentialType | str) -> str:
    """Normalize a credential type (enum or raw string) to its mapping key."""
    if isinstance(value, CredentialType):
        return value.value
    return str(value or "").strip()


def normalize_credentials(credentials: Mapping[Any, str] | None) -> dict[str, str]:
    """Return a plain ``str -> str`` copy with empty values dropped."""
    normalized: dict[str, str] = {}
    for key, value in (credentials or {}).items():
        name = credential_key(key)
        secret = str(value or "")
        if name and secret:
            normalized[name] = secret
    return normalized


def merge_credentials(
    inherited: Mapping[Any, str] | None,
    explicit: Mapping[Any, str] | None,
) -> dict[str, str]:
    """Merge inherited and explicit credentials; explicit values take precedence."""
    merged = normalize_credentials(inherited)
    merged.update(normalize_credentials(explicit))
    return merged


def credentials_from_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Build a credential mapping from the conventional environment variables."""
    env = os.environ if environ is None else environ
    found: dict[str, str] = {}
    for cred_type, env_name in CREDENTIAL_ENV_MAP.items():
        value = str(env.get(env_name, "") or "").strip()
        if value:
            found[cred_type.value] = value
    return found
