import pytest

from flowtable._testing import make_env, sample_words, write_lines


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def env(tmp_path):
    return make_env(tmp_path / '.datadir')


@pytest.fixture
def words_file(tmp_path):
    return write_lines(tmp_path / 'input', sample_words)
