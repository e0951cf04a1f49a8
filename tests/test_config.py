import sys
from unittest import mock

import pytest

from plugshm.config import (
    DEFAULT_SHARE_MEMORY_CAP,
    Config,
    MemMapType,
    SizePercentPair,
    default_config,
    is_arm_arch,
    verify_config,
)
from plugshm.errors import ArchNonSupportedError, OSNonSupportedError


@pytest.fixture
def linux_amd64():
    with mock.patch.object(sys, "platform", "linux"), mock.patch(
        "platform.machine", return_value="x86_64"
    ):
        yield


@pytest.fixture
def linux_arm64():
    with mock.patch.object(sys, "platform", "linux"), mock.patch(
        "platform.machine", return_value="aarch64"
    ):
        yield


def _valid_config():
    config = default_config()
    config.share_memory_buffer_cap = 1 << 20
    config.buffer_slice_sizes = [
        SizePercentPair(4096, 70),
        SizePercentPair(16 << 10, 20),
        SizePercentPair(64 << 10, 10),
    ]
    return config


def test_default_values():
    config = default_config()
    assert config.connection_write_timeout == 10.0
    assert config.initialize_timeout == 1.0
    assert config.queue_cap == 8192
    assert config.share_memory_buffer_cap == 32 * 1024 * 1024
    assert config.share_memory_path_prefix == "/dev/shm/shmipc"
    assert config.queue_path == "/dev/shm/shmipc_queue"
    assert config.mem_map_type is MemMapType.DEV_SHM_FILE
    assert config.rebuild_interval == 60.0
    assert config.log_output is sys.stdout
    assert config.buffer_slice_sizes == [
        SizePercentPair(8172, 50),
        SizePercentPair(32748, 30),
        SizePercentPair(131052, 20),
    ]


def test_default_configs_do_not_share_lists():
    first = default_config()
    second = default_config()
    first.buffer_slice_sizes.append(SizePercentPair(1, 1))
    assert len(second.buffer_slice_sizes) == 3


def test_default_config_is_valid(linux_amd64):
    assert verify_config(default_config()) is None


def test_share_memory_too_small(linux_amd64):
    config = default_config()
    config.share_memory_buffer_cap = 1
    with pytest.raises(ValueError, match="too small"):
        verify_config(config)


def test_empty_slice_sizes(linux_amd64):
    config = _valid_config()
    config.buffer_slice_sizes = []
    with pytest.raises(ValueError):
        verify_config(config)


@pytest.mark.parametrize(
    "pairs",
    [
        [(4096, 70), (16 << 10, 20), (64 << 10, 9)],
        [(4096, 70), (16 << 10, 20), (64 << 10, 11)],
        [(4096, 70), (16 << 10, 20), (DEFAULT_SHARE_MEMORY_CAP, 11)],
    ],
)
def test_invalid_slice_sizes(linux_amd64, pairs):
    config = _valid_config()
    config.buffer_slice_sizes = [SizePercentPair(s, p) for s, p in pairs]
    with pytest.raises(ValueError):
        verify_config(config)


def test_slice_size_larger_than_cap_message(linux_amd64):
    config = _valid_config()
    config.buffer_slice_sizes = [SizePercentPair(DEFAULT_SHARE_MEMORY_CAP, 100)]
    with pytest.raises(ValueError, match="couldn't greater than"):
        verify_config(config)


def test_valid_slice_sizes(linux_amd64):
    assert verify_config(_valid_config()) is None


def test_empty_paths(linux_amd64):
    config = _valid_config()
    config.queue_path = ""
    with pytest.raises(ValueError, match="path"):
        verify_config(config)
    config = _valid_config()
    config.share_memory_path_prefix = ""
    with pytest.raises(ValueError, match="path"):
        verify_config(config)


def test_non_linux_os_rejected():
    with mock.patch.object(sys, "platform", "darwin"), mock.patch(
        "platform.machine", return_value="x86_64"
    ):
        with pytest.raises(OSNonSupportedError):
            verify_config(_valid_config())


def test_unsupported_arch_rejected():
    with mock.patch.object(sys, "platform", "linux"), mock.patch(
        "platform.machine", return_value="ppc64le"
    ):
        with pytest.raises(ArchNonSupportedError):
            verify_config(_valid_config())


def test_is_arm_arch(linux_arm64):
    assert is_arm_arch() is True


def test_is_not_arm_arch(linux_amd64):
    assert is_arm_arch() is False


def test_arm_requires_sizes_multiple_of_four(linux_arm64):
    config = _valid_config()
    config.buffer_slice_sizes = [SizePercentPair(4097, 100)]
    with pytest.raises(ValueError, match="multiple of 4"):
        verify_config(config)


def test_arm_requires_queue_cap_multiple_of_eight(linux_arm64):
    config = _valid_config()
    config.queue_cap = 8191
    with pytest.raises(ValueError, match="multiple of 8"):
        verify_config(config)


def test_arm_valid_config(linux_arm64):
    assert verify_config(_valid_config()) is None


def test_amd64_allows_odd_sizes(linux_amd64):
    config = _valid_config()
    config.buffer_slice_sizes = [SizePercentPair(4097, 100)]
    config.queue_cap = 8191
    assert verify_config(config) is None


def test_config_constructor_matches_default():
    assert Config() == default_config()