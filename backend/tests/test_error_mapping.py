import pytest

from tracker import main, services
from tracker.images import ImageError
from tracker.storage import StoreError


def _leaves(family):
    subclasses = family.__subclasses__()
    if not subclasses:
        return [family]
    return [leaf for sub in subclasses for leaf in _leaves(sub)]


@pytest.mark.parametrize("family", [ImageError, StoreError, services.NotFound, services.BadRequest, services.UnknownStudent])
def test_every_domain_error_has_a_status(family):
    for leaf in _leaves(family):
        assert leaf in main.ERROR_STATUS, leaf.__name__


def test_statuses_are_http_errors():
    assert all(400 <= status < 600 for status in main.ERROR_STATUS.values())
