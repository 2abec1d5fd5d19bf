import pytest

from ole2math.exceptions import CorruptContainerError
from ole2math.extractors.compound_file import (
    END_OF_CHAIN,
    CompoundFileReader,
    list_streams,
    open_container,
)
from ole2math.tests.cfb_builder import build_compound_file, build_nested_compound_file


def test_reads_mini_stream_with_exact_size() -> None:
    cfb = build_compound_file({"Equation Native": b"\x03\x01abc"})

    container = open_container(bytes(cfb))

    assert len(container) == 1
    stream = container.find("Equation Native")
    assert stream is not None
    assert stream.content == b"\x03\x01abc"
    assert stream.path == "Equation Native"


def test_reads_multi_sector_main_stream() -> None:
    payload = bytes(range(256)) * 20  # 5120 bytes, ten sectors
    cfb = build_compound_file({"Big": payload, "Small": b"x" * 100})

    container = open_container(bytes(cfb))

    assert container.find("Big").content == payload
    assert container.find("Small").content == b"x" * 100


def test_streams_in_nested_storages_carry_their_path() -> None:
    cfb = build_compound_file(
        {
            "\x01CompObj": b"compobj",
            "ObjectPool": {"_1": {"Equation Native": b"\x03\x01"}},
        }
    )

    container = open_container(bytes(cfb))

    paths = [stream.path for stream in list_streams(container)]
    assert paths == ["\x01CompObj", "ObjectPool/_1/Equation Native"]
    assert container.find("Equation Native").content == b"\x03\x01"


def test_empty_stream_is_listed() -> None:
    cfb = build_compound_file({"Empty": b"", "Other": b"data"})

    container = open_container(bytes(cfb))

    assert container.find("Empty").content == b""
    assert container.find("Other").content == b"data"


def test_reader_exposes_directory_entries() -> None:
    cfb = build_compound_file({"A": b"a", "B": b"b"})

    reader = CompoundFileReader(bytes(cfb))

    names = [entry.name for entry in reader.entries]
    assert names[:3] == ["Root Entry", "A", "B"]
    assert reader.sector_size == 512


def test_bad_signature_is_corrupt() -> None:
    cfb = build_compound_file({"A": b"a"})
    cfb.data[0:8] = b"NOTOLE!!"

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_short_input_is_corrupt() -> None:
    with pytest.raises(CorruptContainerError):
        open_container(b"\xd0\xcf\x11\xe0")


def test_non_compound_bytes_are_corrupt() -> None:
    with pytest.raises(CorruptContainerError):
        open_container(b"\x03\x01" + b"\x00" * 1024)


def test_cyclic_chain_is_rejected() -> None:
    cfb = build_compound_file({"Big": b"B" * 5000})
    start = cfb.start_sectors["Big"]
    # second sector points back to the first
    cfb.set_fat_entry(start + 1, start)

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_out_of_range_sector_is_rejected() -> None:
    cfb = build_compound_file({"Big": b"B" * 5000})
    start = cfb.start_sectors["Big"]
    cfb.set_fat_entry(start, 0x00FFFFF0)

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_truncated_chain_is_rejected() -> None:
    cfb = build_compound_file({"Big": b"B" * 5000})
    start = cfb.start_sectors["Big"]
    # chain ends after one sector while 5000 bytes are declared
    cfb.set_fat_entry(start, END_OF_CHAIN)

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_truncated_file_is_rejected() -> None:
    cfb = build_compound_file({"Big": b"B" * 5000})
    data = bytes(cfb)[:-1024]

    with pytest.raises(CorruptContainerError):
        open_container(data)


def test_mini_chain_cycle_is_rejected() -> None:
    cfb = build_compound_file({"Small": b"s" * 200})
    start = cfb.start_sectors["Small"]
    # four mini sectors; the second points back to the first
    cfb.set_mini_fat_entry(start + 1, start)

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_directory_sibling_cycle_is_rejected() -> None:
    cfb = build_compound_file({"A": b"a", "B": b"b"})
    # A (id 1) -> B (id 2) -> A
    cfb.link_entry(2, right=1)

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_storage_child_cycle_is_rejected() -> None:
    cfb = build_compound_file({"Pool": {"Inner": b"x"}})
    # the storage lists itself as its own child
    cfb.link_entry(1, child=1)

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_out_of_range_child_is_rejected() -> None:
    cfb = build_compound_file({"Pool": {"Inner": b"x"}})
    cfb.link_entry(1, child=5000)

    with pytest.raises(CorruptContainerError):
        open_container(bytes(cfb))


def test_deeply_nested_storages_are_walked() -> None:
    cfb = build_nested_compound_file(1500, "Equation Native", b"\x03\x01deep")

    container = open_container(bytes(cfb))

    stream = container.find("Equation Native")
    assert stream.content == b"\x03\x01deep"
    assert stream.path.count("/") == 1500
    assert stream.path.startswith("S0/S1/S2/")

