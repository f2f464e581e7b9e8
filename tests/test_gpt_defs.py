import pytest

from ccasim import gpt_defs as g
from ccasim.gpt_defs import Gpi, MapType, PgsSize, PpsSize

ALL_T = [32, 36, 40, 42, 44, 48, 52]
ALL_P = [12, 14, 16]


def test_pps_t_matches_table():
    assert [g.pps_t(pps) for pps in PpsSize] == ALL_T


def test_pgs_p_matches_table():
    assert g.pgs_p(PgsSize.PGS_4K) == 12
    assert g.pgs_p(PgsSize.PGS_64K) == 16
    assert g.pgs_p(PgsSize.PGS_16K) == 14


@pytest.mark.parametrize("bad", [7, -1, 100])
def test_pps_t_rejects_illegal(bad):
    with pytest.raises(ValueError):
        g.pps_t(bad)


def test_pgs_p_rejects_illegal():
    with pytest.raises(ValueError):
        g.pgs_p(3)


@pytest.mark.parametrize("t", ALL_T)
def test_l0_region_count_covers_pps(t):
    assert g.l0_region_count(t) == 2 ** g.l0_idx_width(t)
    assert g.l0_region_count(t) * g.L0_REGION_SIZE == g.pps_actual_size(t)


def test_l0_idx_width_zero_when_small():
    assert g.l0_idx_width(g.S_VAL) == 0
    assert g.l0_region_count(g.S_VAL) == 1


@pytest.mark.parametrize("k", [0, 1, 2, 3])
def test_l0_idx_per_gigabyte(k):
    assert g.l0_idx(k * g.SIZE_1GB) == k
    assert g.l0_idx(k * g.SIZE_1GB + g.SIZE_1GB - 1) == k


def test_l0_blk_desc_any():
    assert g.l0_blk_desc(Gpi.ANY) == 0xF1


@pytest.mark.parametrize("gpi", list(Gpi))
def test_l0_blk_desc_round_trip(gpi):
    desc = g.l0_blk_desc(gpi)
    assert g.l0_blkd_gpi(desc) == gpi
    assert g.l0_type(desc) == g.L0_TYPE_BLK_DESC


@pytest.mark.parametrize("index", [0, 1, 4096, 0xFFFFFF])
def test_l0_tbl_desc_round_trip(index):
    desc = g.l0_tbl_desc(index)
    assert g.l0_type(desc) == g.L0_TYPE_TBL_DESC
    assert g.l0_tbld_index(desc) == index


def test_l0_tbl_desc_rejects_negative():
    with pytest.raises(ValueError):
        g.l0_tbl_desc(-1)


def test_l0_alignment():
    assert g.is_l0_aligned(g.SIZE_1GB)
    assert g.is_l0_aligned(g.SIZE_4GB)
    assert not g.is_l0_aligned(g.SIZE_4KB)
    assert not g.is_l0_aligned(g.SIZE_1GB + g.SIZE_4KB)


@pytest.mark.parametrize("p", ALL_P)
def test_l1_alignment(p):
    size = g.pgs_actual_size(p)
    assert g.is_l1_aligned(p, size)
    assert g.is_l1_aligned(p, 3 * size)
    assert not g.is_l1_aligned(p, size + 1)


@pytest.mark.parametrize("p", ALL_P)
def test_l1_table_covers_l0_region(p):
    covered = g.l1_entry_count(p) * g.GPIS_PER_L1_ENTRY * g.pgs_actual_size(p)
    assert covered == g.L0GPTSZ_ACTUAL_SIZE
    assert g.l1_entry_count(p) == 2 ** g.l1_idx_width(p)
    assert g.l1_idx_shift(p) == p + 4


@pytest.mark.parametrize("p", ALL_P)
def test_l1_gpi_idx_cycles(p):
    size = g.pgs_actual_size(p)
    for k in range(16):
        assert g.l1_gpi_idx(p, k * size) == k
    assert g.l1_gpi_idx(p, 16 * size) == 0


def test_build_l1_desc_any_is_all_ones():
    assert g.build_l1_desc(Gpi.ANY) == g.U64_MAX
    assert g.L1_ANY_DESC == g.U64_MAX


@pytest.mark.parametrize("gpi", list(Gpi))
def test_build_l1_desc_every_nibble(gpi):
    desc = g.build_l1_desc(gpi)
    assert all((desc >> (4 * n)) & 0xF == gpi for n in range(16))
    assert desc <= g.U64_MAX


@pytest.mark.parametrize("map_type", list(MapType))
@pytest.mark.parametrize("gpi", list(Gpi))
def test_pas_attr_round_trip(map_type, gpi):
    attr = g.pas_attr(map_type, gpi)
    assert g.pas_attr_gpi(attr) == gpi
    assert g.pas_attr_map_type(attr) == map_type


def test_pas_attr_granule_root_layout():
    attr = g.pas_attr(MapType.GRANULE, Gpi.ROOT)
    assert attr == (g.PAS_ATTR_MAP_TYPE_MASK << g.PAS_ATTR_MAP_TYPE_SHIFT) | Gpi.ROOT
    assert g.pas_attr(MapType.BLOCK, Gpi.REALM) == Gpi.REALM