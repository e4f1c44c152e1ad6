"""Basic smoke tests."""

import roover
import roover.version


def test_version_defined() -> None:
    assert isinstance(roover.__version__, str)


def test_version_single_source_of_truth() -> None:
    assert roover.__version__ == roover.version.__version__
