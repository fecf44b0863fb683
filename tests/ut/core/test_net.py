"""URL scheme 校验测试"""

import pytest

from repoweave.core.exceptions import ConfigError
from repoweave.utils.net import validate_url_scheme


class TestValidateUrlScheme:
    @pytest.mark.parametrize("url", [
        "http://example.com/pkg.tar.gz",
        "https://example.com/pkg.tar.gz",
        "ftp://mirror.example.com/pkg.tar.gz",
    ])
    def test_allowed(self, url: str) -> None:
        validate_url_scheme(url)

    def test_file_rejected(self) -> None:
        with pytest.raises(ConfigError, match="不允许的 URL 协议"):
            validate_url_scheme("file:///etc/passwd")

    def test_empty_scheme_rejected(self) -> None:
        with pytest.raises(ConfigError, match="不允许的 URL 协议"):
            validate_url_scheme("/local/path")

    def test_context_in_error(self) -> None:
        with pytest.raises(ConfigError, match="archive foo"):
            validate_url_scheme("file:///x", context="archive foo")
