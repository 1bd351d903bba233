from pathlib import Path

import pytest

from tests.infrastructure import Site


@pytest.fixture
def site(tmp_path: Path) -> Site:
    """Empty source root."""
    return Site(tmp_path / "web")


@pytest.fixture
def demo_site(site: Site) -> Site:
    """Source root with the demo tag library at /WEB-INF/x.tld.yaml."""
    site.demo_tld()
    return site
