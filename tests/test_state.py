import pytest

from tecnicofs.config import (
    BLOCK_SIZE,
    DATA_BLOCKS,
    DIRECT_BLOCKS,
    INODE_TABLE_SIZE,
    MAX_DIR_ENTRIES,
    MAX_FILE_NAME,
    MAX_OPEN_FILES,
    ROOT_DIR_INUM,
)
from tecnicofs.state import FileSystemState, InodeType, TfsError


@pytest.fixture
def state():
    fs = FileSystemState()
    assert fs.inode_create(InodeType.DIRECTORY) == ROOT_DIR_INUM
    return fs


def test_root_directory_has_a_full_block(state):
    root = state.inode_get(ROOT_DIR_INUM)
    assert root.node_type is InodeType.DIRECTORY
    assert root.size == BLOCK_SIZE
    assert len(root.entries) == MAX_DIR_ENTRIES
    assert all(entry is None for entry in root.entries)


def test_new_file_is_empty(state):
    inumber = state.inode_create(InodeType.FILE)
    inode = state.inode_get(inumber)
    assert inode.size == 0
    assert inode.data_block == -1
    assert inode.direct == [-1] * DIRECT_BLOCKS


def test_inode_table_fills_up(state):
    numbers = [state.inode_create(InodeType.FILE) for _ in range(INODE_TABLE_SIZE - 1)]
    assert sorted(numbers) == list(range(1, INODE_TABLE_SIZE))
    with pytest.raises(TfsError):
        state.inode_create(InodeType.FILE)


def test_deleted_inode_number_is_reused(state):
    first = state.inode_create(InodeType.FILE)
    state.inode_create(InodeType.FILE)
    state.inode_delete(first)
    assert state.inode_create(InodeType.FILE) == first


@pytest.mark.parametrize("inumber", [-1, INODE_TABLE_SIZE, 5])
def test_delete_missing_inode_raises(state, inumber):
    with pytest.raises(TfsError):
        state.inode_delete(inumber)


def test_inode_get_out_of_range_raises(state):
    with pytest.raises(TfsError):
        state.inode_get(INODE_TABLE_SIZE)


def test_directory_entry_round_trip(state):
    inumber = state.inode_create(InodeType.FILE)
    state.add_dir_entry(ROOT_DIR_INUM, inumber, "f1")
    assert state.find_in_dir(ROOT_DIR_INUM, "f1") == inumber
    assert state.find_in_dir(ROOT_DIR_INUM, "f2") is None


def test_long_names_are_truncated(state):
    inumber = state.inode_create(InodeType.FILE)
    name = "n" * (MAX_FILE_NAME + 5)
    state.add_dir_entry(ROOT_DIR_INUM, inumber, name)
    assert state.find_in_dir(ROOT_DIR_INUM, name[: MAX_FILE_NAME - 1]) == inumber
    assert state.find_in_dir(ROOT_DIR_INUM, name) is None


def test_add_entry_to_file_raises(state):
    file_inumber = state.inode_create(InodeType.FILE)
    other = state.inode_create(InodeType.FILE)
    with pytest.raises(TfsError):
        state.add_dir_entry(file_inumber, other, "x")


def test_add_entry_with_empty_name_raises(state):
    inumber = state.inode_create(InodeType.FILE)
    with pytest.raises(TfsError):
        state.add_dir_entry(ROOT_DIR_INUM, inumber, "")


def test_add_entry_with_invalid_sub_inumber_raises(state):
    with pytest.raises(TfsError):
        state.add_dir_entry(ROOT_DIR_INUM, INODE_TABLE_SIZE, "x")


def test_find_in_file_raises(state):
    inumber = state.inode_create(InodeType.FILE)
    with pytest.raises(TfsError):
        state.find_in_dir(inumber, "x")


def test_directory_fills_up(state):
    inumber = state.inode_create(InodeType.FILE)
    for index in range(MAX_DIR_ENTRIES):
        state.add_dir_entry(ROOT_DIR_INUM, inumber, f"f{index}")
    with pytest.raises(TfsError):
        state.add_dir_entry(ROOT_DIR_INUM, inumber, "extra")


def test_deleting_directory_deletes_children(state):
    directory = state.inode_create(InodeType.DIRECTORY)
    child = state.inode_create(InodeType.FILE)
    state.add_dir_entry(directory, child, "child")
    state.inode_delete(directory)
    with pytest.raises(TfsError):
        state.inode_delete(child)


def test_blocks_are_distinct_and_reused(state):
    first = state.data_block_alloc()
    second = state.data_block_alloc()
    assert first != second
    state.data_block_free(first)
    assert state.data_block_alloc() == first


def test_data_blocks_run_out(state):
    for _ in range(DATA_BLOCKS - 1):
        state.data_block_alloc()
    with pytest.raises(TfsError):
        state.data_block_alloc()


def test_data_block_contents_persist(state):
    block = state.data_block_alloc()
    view = state.data_block_get(block)
    assert len(view) == BLOCK_SIZE
    view[:3] = b"AAA"
    assert bytes(state.data_block_get(block)[:3]) == b"AAA"


@pytest.mark.parametrize("block", [-1, DATA_BLOCKS])
def test_invalid_block_raises(state, block):
    with pytest.raises(TfsError):
        state.data_block_get(block)
    with pytest.raises(TfsError):
        state.data_block_free(block)


def test_deleting_file_frees_direct_blocks(state):
    inumber = state.inode_create(InodeType.FILE)
    inode = state.inode_get(inumber)
    blocks = [state.data_block_alloc(), state.data_block_alloc()]
    inode.direct[:2] = blocks
    inode.size = 2 * BLOCK_SIZE
    state.inode_delete(inumber)
    assert state.data_block_alloc() == min(blocks)


def test_deleting_file_frees_indirect_blocks(state):
    inumber = state.inode_create(InodeType.FILE)
    inode = state.inode_get(inumber)
    inode.direct = [state.data_block_alloc() for _ in range(DIRECT_BLOCKS)]
    inode.data_block = state.data_block_alloc()
    references = state.data_block_get(inode.data_block).cast("i")
    references[0] = state.data_block_alloc()
    inode.size = (DIRECT_BLOCKS + 1) * BLOCK_SIZE
    state.inode_delete(inumber)
    for _ in range(DATA_BLOCKS - 1):
        state.data_block_alloc()
    with pytest.raises(TfsError):
        state.data_block_alloc()


def test_open_file_table_round_trip(state):
    handle = state.add_to_open_file_table(3, 7)
    entry = state.get_open_file_entry(handle)
    assert (entry.inumber, entry.offset) == (3, 7)
    state.remove_from_open_file_table(handle)
    assert state.add_to_open_file_table(4, 0) == handle


def test_open_file_table_fills_up(state):
    handles = [state.add_to_open_file_table(1, 0) for _ in range(MAX_OPEN_FILES)]
    assert sorted(handles) == list(range(MAX_OPEN_FILES))
    with pytest.raises(TfsError):
        state.add_to_open_file_table(1, 0)


def test_closing_twice_raises(state):
    handle = state.add_to_open_file_table(1, 0)
    state.remove_from_open_file_table(handle)
    with pytest.raises(TfsError):
        state.remove_from_open_file_table(handle)


@pytest.mark.parametrize("fhandle", [-1, MAX_OPEN_FILES])
def test_invalid_handle_raises(state, fhandle):
    with pytest.raises(TfsError):
        state.get_open_file_entry(fhandle)
    with pytest.raises(TfsError):
        state.remove_from_open_file_table(fhandle)