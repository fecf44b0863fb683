"""网络工具: URL 协议校验"""

from __future__ import annotations

from urllib.parse import urlparse

from repoweave.core.exceptions import ConfigError

_ALLOWED_SCHEMES = frozenset(("http", "https", "ftp"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """下载地址只允许 http/https/ftp

    Raises:
        ConfigError: URL 协议不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ConfigError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 {'/'.join(sorted(_ALLOWED_SCHEMES))}: {url}"
        )
