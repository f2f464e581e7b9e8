"""Granule Protection Table constants, encodings and address arithmetic."""

from __future__ import annotations

from enum import IntEnum

U64_MASK = 0xFFFF_FFFF_FFFF_FFFF
U64_MAX = U64_MASK

PAS_REGION_COUNT = 4

SIZE_4KB = 0x1000
SIZE_16KB = 4 * SIZE_4KB
SIZE_1GB = 0x4000_0000
SIZE_4GB = 0x1_0000_0000
PPS_REGION_BASE = 0x1_0000_0000
SZ_2M = 0x0020_0000

L1_GPT_MAX_NUM = 0xFFFFFF

# L0GPTSZ would be read from GPCCR_EL3; 0 selects 1GB regions.
GPT_L0GPTSZ = 0
S_VAL = GPT_L0GPTSZ + 30
L0_IDX_SHIFT = S_VAL
L0_REGION_SIZE = 1 << L0_IDX_SHIFT
L0GPTSZ_ACTUAL_SIZE = 1 << S_VAL

L0_TYPE_BLK_DESC = 0x1
L0_TYPE_TBL_DESC = 0x3
L0_TYPE_MASK = 0xF
L0_BLK_DESC_GPI_SHIFT = 4
L0_BLK_DESC_GPI_MASK = 0xF
L0_TBL_DESC_L1ADDR_SHIFT = 4

PAS_ATTR_GPI_MASK = 0xF
PAS_ATTR_MAP_TYPE_SHIFT = 4
PAS_ATTR_MAP_TYPE_MASK = 0x1

L1_GPI_IDX_MASK = 0xF
GPIS_PER_L1_ENTRY = 16


class Gpi(IntEnum):
    """Granule protection information values."""

    NO_ACCESS = 0x0
    SECURE = 0x8
    NS = 0x9
    ROOT = 0xA
    REALM = 0xB
    ANY = 0xF


class PpsSize(IntEnum):
    """Protected physical address space size encodings."""

    PPS_4GB = 0x0
    PPS_64GB = 0x1
    PPS_1TB = 0x2
    PPS_4TB = 0x3
    PPS_16TB = 0x4
    PPS_256TB = 0x5
    PPS_4PB = 0x6


class PgsSize(IntEnum):
    """Physical granule size encodings."""

    PGS_4K = 0x0
    PGS_64K = 0x1
    PGS_16K = 0x2


class MapType(IntEnum):
    """How a PAS region is mapped: whole L0 blocks or L1 granules."""

    BLOCK = 0x0
    GRANULE = 0x1


_PPS_T = {
    PpsSize.PPS_4GB: 32,
    PpsSize.PPS_64GB: 36,
    PpsSize.PPS_1TB: 40,
    PpsSize.PPS_4TB: 42,
    PpsSize.PPS_16TB: 44,
    PpsSize.PPS_256TB: 48,
    PpsSize.PPS_4PB: 52,
}

_PGS_P = {
    PgsSize.PGS_4K: 12,
    PgsSize.PGS_64K: 16,
    PgsSize.PGS_16K: 14,
}


def pps_t(pps: int) -> int:
    """Return the address width T for a PPS encoding; ValueError if illegal."""
    return _PPS_T[PpsSize(pps)]


def pgs_p(pgs: int) -> int:
    """Return the granule shift P for a PGS encoding; ValueError if illegal."""
    return _PGS_P[PgsSize(pgs)]


def l0_idx_width(t: int) -> int:
    """Width of the L0 index field, zero when T does not exceed S."""
    return t - S_VAL if t > S_VAL else 0


def l0_idx_mask(t: int) -> int:
    """Mask for the L0 index field."""
    return 0x3FFFFF >> (22 - l0_idx_width(t))


def l0_region_count(t: int) -> int:
    """Number of L0 table entries for address width T."""
    return l0_idx_mask(t) + 1


def l0_idx(pa: int) -> int:
    """L0 table index of a physical address."""
    return pa >> L0_IDX_SHIFT


def l0_blk_desc(gpi: int) -> int:
    """Build an L0 block descriptor carrying a GPI."""
    return L0_TYPE_BLK_DESC | ((gpi & L0_BLK_DESC_GPI_MASK) << L0_BLK_DESC_GPI_SHIFT)


def l0_blkd_gpi(desc: int) -> int:
    """GPI held in an L0 block descriptor."""
    return (desc >> L0_BLK_DESC_GPI_SHIFT) & L0_BLK_DESC_GPI_MASK


def l0_type(desc: int) -> int:
    """Descriptor type field of an L0 entry."""
    return desc & L0_TYPE_MASK


def l0_tbl_desc(table_index: int) -> int:
    """Build an L0 table descriptor pointing at the L1 table with this index."""
    if table_index < 0:
        raise ValueError(f"L1 table index must not be negative: {table_index}")
    return (L0_TYPE_TBL_DESC | (table_index << L0_TBL_DESC_L1ADDR_SHIFT)) & U64_MASK


def l0_tbld_index(desc: int) -> int:
    """L1 table index held in an L0 table descriptor."""
    return desc >> L0_TBL_DESC_L1ADDR_SHIFT


def is_l0_aligned(pa: int) -> bool:
    """Whether an address or size is aligned to an L0 region."""
    return pa & (L0_REGION_SIZE - 1) == 0


def pgs_actual_size(p: int) -> int:
    """Granule size in bytes."""
    return 1 << p


def pps_actual_size(t: int) -> int:
    """Protected physical address space size in bytes."""
    return 1 << t


def is_l1_aligned(p: int, pa: int) -> bool:
    """Whether an address or size is aligned to a granule."""
    return pa & (pgs_actual_size(p) - 1) == 0


def l1_idx_width(p: int) -> int:
    """Width of the L1 index field."""
    return (S_VAL - 1) - (p + 3)


def l1_idx_mask(p: int) -> int:
    """Mask for the L1 index field."""
    return 0x7FFFFF >> (23 - l1_idx_width(p))


def l1_entry_count(p: int) -> int:
    """Number of 64-bit entries in one L1 table."""
    return l1_idx_mask(p) + 1


def l1_idx_shift(p: int) -> int:
    """Bit position of the L1 index field in an address."""
    return p + 4


def l1_gpi_idx(p: int, pa: int) -> int:
    """Position of an address's GPI nibble within its L1 entry."""
    return (pa >> p) & L1_GPI_IDX_MASK


def build_l1_desc(gpi: int) -> int:
    """An L1 entry whose sixteen GPI nibbles all hold the same value."""
    nibble = gpi & 0xF
    desc = nibble | (nibble << 4)
    desc |= desc << 8
    desc |= desc << 16
    return (desc | (desc << 32)) & U64_MASK


def pas_attr(map_type: int, gpi: int) -> int:
    """Pack a mapping type and GPI into PAS attributes."""
    return ((map_type & PAS_ATTR_MAP_TYPE_MASK) << PAS_ATTR_MAP_TYPE_SHIFT) | (
        gpi & PAS_ATTR_GPI_MASK
    )


def pas_attr_gpi(attr: int) -> int:
    """GPI held in PAS attributes."""
    return attr & PAS_ATTR_GPI_MASK


def pas_attr_map_type(attr: int) -> int:
    """Mapping type held in PAS attributes."""
    return (attr >> PAS_ATTR_MAP_TYPE_SHIFT) & PAS_ATTR_MAP_TYPE_MASK


L1_SECURE_DESC = build_l1_desc(Gpi.SECURE)
L1_NS_DESC = build_l1_desc(Gpi.NS)
L1_REALM_DESC = build_l1_desc(Gpi.REALM)
L1_ANY_DESC = build_l1_desc(Gpi.ANY)