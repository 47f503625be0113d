from __future__ import annotations

import pytest

from tests.fakes import RecordingSleep


@pytest.fixture
def staging_dir(tmp_path):
    return tmp_path / "staging"


@pytest.fixture
def options(staging_dir) -> dict[str, str]:
    return {
        "palo.data.dir": str(staging_dir),
        "palo.loadcmd": 'COLUMNS TERMINATED BY "\\t" (id, name)',
        "hadoop.job.ugi": "loader,s3cret",
        "palo.broker.name": "hdfs_broker",
    }


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
