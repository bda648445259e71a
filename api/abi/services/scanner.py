"""Credential screening for community posts.

Questions and answers are public, so a pasted API key or password in a post
body is a leak. This uses detect-secrets with enable_eager_search=False so
only quoted strings and structured patterns (AWS keys, JWTs, private keys)
match; ordinary prose such as "the token endpoint" is not flagged.
"""

import structlog
from detect_secrets.core.scan import _scan_line
from detect_secrets.settings import default_settings, get_plugins
from detect_secrets.util.code_snippet import CodeSnippet

from abi.errors import ContentFlagged
from abi.metrics import guardrail_blocks

log = structlog.get_logger()

SECRET_REASON = "Content appears to contain credentials. Remove them before posting."


class SecretDetectedError(Exception):
    """Raised when a scan detects one or more potential secrets.

    Attributes:
        secret_types: detector names that fired. Secret values are never kept.
    """

    def __init__(self, secret_types: set[str]) -> None:
        self.secret_types = secret_types
        super().__init__(f"Potential secret(s) detected: {sorted(secret_types)}")


def scan_content(text: str) -> None:
    """Scan a block of text line by line.

    Raises:
        SecretDetectedError: if any detector matches.
    """
    found_types: set[str] = set()

    with default_settings():
        for line in text.splitlines():
            if not line.strip():
                continue
            context = CodeSnippet(snippet=[line], start_line=1, target_index=0)
            for plugin in get_plugins():
                for secret in _scan_line(
                    plugin=plugin,
                    filename="community-post",
                    line=line,
                    line_number=0,
                    context=context,
                    enable_eager_search=False,
                ):
                    found_types.add(secret.type)

    if found_types:
        raise SecretDetectedError(secret_types=found_types)


def ensure_no_secrets(*fields: str) -> None:
    """Raise ContentFlagged if any field carries a credential."""
    for text in fields:
        if not text:
            continue
        try:
            scan_content(text)
        except SecretDetectedError as exc:
            guardrail_blocks.labels(kind="secret", severity="high").inc()
            log.info("secret_detected", secret_types=sorted(exc.secret_types))
            raise ContentFlagged(reason=SECRET_REASON, severity="high") from exc
