"""A two-level Granule Protection Table built over four PAS regions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .gpt_defs import (
    GPT_L0GPTSZ,
    L0_BLK_DESC_GPI_SHIFT,
    L0_TYPE_BLK_DESC,
    L0_TYPE_TBL_DESC,
    L0GPTSZ_ACTUAL_SIZE,
    L1_ANY_DESC,
    PAS_REGION_COUNT,
    S_VAL,
    SIZE_1GB,
    U64_MASK,
    U64_MAX,
    Gpi,
    MapType,
    PgsSize,
    PpsSize,
    build_l1_desc,
    is_l0_aligned,
    is_l1_aligned,
    l0_blk_desc,
    l0_blkd_gpi,
    l0_idx,
    l0_region_count,
    l0_tbl_desc,
    l0_tbld_index,
    l0_type,
    l1_entry_count,
    l1_gpi_idx,
    l1_idx_mask,
    l1_idx_shift,
    pas_attr,
    pas_attr_gpi,
    pas_attr_map_type,
    pgs_actual_size,
    pgs_p,
    pps_actual_size,
    pps_t,
)

log = logging.getLogger(__name__)

_REGION_GPIS = (Gpi.ROOT, Gpi.NS, Gpi.SECURE, Gpi.REALM)


class GptError(Exception):
    """Raised when the table cannot be configured or consulted."""


@dataclass
class PasRegion:
    """A physical address space region and its attributes."""

    base: int
    size: int
    attr: int

    @property
    def gpi(self) -> int:
        return pas_attr_gpi(self.attr)

    @property
    def map_type(self) -> int:
        return pas_attr_map_type(self.attr)

    @property
    def end(self) -> int:
        return self.base + self.size


def get_base_ptr(count: int) -> int:
    """Base address of the count-th 1GB region."""
    return count * SIZE_1GB


def check_pas_overlap(base_1: int, size_1: int, base_2: int, size_2: int) -> bool:
    """Whether two address ranges overlap."""
    return base_1 + size_1 > base_2 and base_2 + size_2 > base_1


class GranuleProtectionTable:
    """L0 and L1 tables describing the GPI of every granule."""

    def __init__(self, pps: int = PpsSize.PPS_4GB, pgs: int = PgsSize.PGS_4K) -> None:
        try:
            self.t = pps_t(pps)
        except (ValueError, KeyError) as exc:
            raise GptError(f"Illegal PPS value: {pps}") from exc
        try:
            self.p = pgs_p(pgs)
        except (ValueError, KeyError) as exc:
            raise GptError(f"Illegal PGS value: {pgs}") from exc
        self.pps = PpsSize(pps)
        self.pgs = PgsSize(pgs)
        self.l0: List[int] = []
        self.l1_tables: List[List[int]] = []
        self.pas_regions: List[Optional[PasRegion]] = [None] * PAS_REGION_COUNT
        self.l1_entries_written = 0
        self._l1_index_mask = l1_idx_mask(self.p)

    # ------------------------------------------------------------------ PAS

    def init_pas_region(self, base: int, size: int, index: int) -> PasRegion:
        """Record PAS region ``index``; its GPI follows the world order."""
        if not 0 <= index < PAS_REGION_COUNT:
            raise GptError(f"PAS region index out of range: {index}")
        if base < 0 or size <= 0:
            raise GptError(f"Invalid PAS region base 0x{base:x} size 0x{size:x}")
        region = PasRegion(base, size, pas_attr(MapType.GRANULE, _REGION_GPIS[index]))
        self.pas_regions[index] = region
        log.info(
            "[GPT] PAS[%d] region base: 0x%x, size: 0x%x, ATTR: 0x%x",
            index, region.base, region.size, region.attr,
        )
        return region

    # ------------------------------------------------------------------- L0

    def init_l0(self) -> None:
        """Point every L0 entry at an ANY block."""
        desc = l0_blk_desc(Gpi.ANY)
        count = l0_region_count(self.t)
        self.l0 = [desc] * count
        self.l1_tables = []
        log.info("[GPT] L0 table initialized")
        log.info("      L0 region number: %d", count)
        log.info("      L0 descriptor: 0x%x", desc)

    # ------------------------------------------------------------------- L1

    def _regions(self) -> List[PasRegion]:
        missing = [i for i, r in enumerate(self.pas_regions) if r is None]
        if missing:
            raise GptError(f"PAS region {missing[0]} is not initialised")
        return list(self.pas_regions)  # type: ignore[arg-type]

    def _previous_pas_exists_here(self, index: int, regions: List[PasRegion], upto: int) -> bool:
        start = L0GPTSZ_ACTUAL_SIZE * index
        return any(
            check_pas_overlap(start, L0GPTSZ_ACTUAL_SIZE, r.base, r.size)
            for r in regions[:upto]
        )

    def l1_region_count(self) -> int:
        """Validate the PAS regions and count the L1 tables they need."""
        if not self.l0:
            raise GptError("L0 table is not initialised")
        regions = self._regions()
        total = 0
        for idx, region in enumerate(regions):
            if U64_MAX - region.base < region.size:
                raise GptError(f"Address overflow in PAS[{idx}]")
            if region.end > pps_actual_size(self.t):
                raise GptError(f"PAS[{idx}] size invalid")
            for later in range(idx + 1, len(regions)):
                other = regions[later]
                if check_pas_overlap(region.base, region.size, other.base, other.size):
                    raise GptError(f"PAS[{idx}] overlaps with PAS[{later}]")

            first_l0 = l0_idx(region.base)
            last_l0 = l0_idx(region.end - 1)
            for i in range(first_l0, last_l0 + 1):
                desc = self.l0[i]
                if not (l0_type(desc) == L0_TYPE_BLK_DESC and l0_blkd_gpi(desc) == Gpi.ANY):
                    raise GptError(f"PAS[{idx}] overlaps with previous L0[{i}]")

            if region.map_type == MapType.BLOCK:
                if not (is_l0_aligned(region.base) and is_l0_aligned(region.size)):
                    raise GptError(f"PAS[{idx}] is not block-aligned")
                continue

            if not (is_l1_aligned(self.p, region.base) and is_l1_aligned(self.p, region.size)):
                raise GptError(f"PAS[{idx}] is not granule-aligned")
            current = last_l0 - first_l0 + 1
            if current > 1 and self._previous_pas_exists_here(last_l0, regions, idx):
                current -= 1
            if self._previous_pas_exists_here(first_l0, regions, idx):
                current -= 1
            total += current
        return total

    def _l1_index(self, pa: int) -> int:
        return (pa >> l1_idx_shift(self.p)) & self._l1_index_mask

    def _generate_l0_blk_desc(self, region: PasRegion) -> None:
        desc = l0_blk_desc(region.gpi)
        for idx in range(l0_idx(region.base), l0_idx(region.end)):
            self.l0[idx] = desc
            log.info(
                "[GPT] L0 entry (BLOCK) index[%d] GPI: 0x%x Desc: 0x%x",
                idx, l0_blkd_gpi(desc), desc,
            )

    def _new_l1_table(self) -> int:
        self.l1_tables.append([L1_ANY_DESC] * l1_entry_count(self.p))
        return len(self.l1_tables) - 1

    def _l1_end_pa(self, cur_pa: int, end_pa: int) -> int:
        cur = l0_idx(cur_pa)
        if cur == l0_idx(end_pa):
            return end_pa
        return (cur + 1) << S_VAL

    def _fill_l1(self, table: List[int], first: int, last: int, gpi: int) -> None:
        desc = build_l1_desc(gpi)
        mask = (U64_MAX << (l1_gpi_idx(self.p, first) << 2)) & U64_MASK
        last_index = self._l1_index(last)
        for i in range(self._l1_index(first), last_index + 1):
            if i == last_index:
                mask &= mask >> ((15 - l1_gpi_idx(self.p, last)) << 2)
            table[i] = (table[i] & ~mask & U64_MASK) | (desc & mask)
            self.l1_entries_written += 1
            mask = U64_MAX

    def _generate_l0_tbl_desc(self, region: PasRegion) -> None:
        end_pa = region.end
        cur_pa = region.base
        granule = pgs_actual_size(self.p)
        for idx in range(l0_idx(region.base), l0_idx(end_pa - 1) + 1):
            desc = self.l0[idx]
            if l0_type(desc) == L0_TYPE_TBL_DESC:
                table_index = l0_tbld_index(desc)
            else:
                table_index = self._new_l1_table()
                self.l0[idx] = l0_tbl_desc(table_index)
            log.info(
                "[GPT] L0 entry (TABLE) index[%d] ==> L1 table %d L0 TBL DESC: 0x%x",
                idx, table_index, self.l0[idx],
            )
            next_pa = self._l1_end_pa(cur_pa, end_pa)
            self._fill_l1(self.l1_tables[table_index], cur_pa, next_pa - granule, region.gpi)
            cur_pa = next_pa

    def init_l1(self) -> int:
        """Build descriptors for every PAS region; return the L1 table count."""
        count = self.l1_region_count()
        log.info("[GPT] Total L1 table count: 0x%x", count)
        log.info("[GPT]========== GPT Configuration ==========")
        log.info("     PPS/T:            0x%x/%d", self.pps, self.t)
        log.info("     PGS/P:            0x%x/%d", self.pgs, self.p)
        log.info("     L0GPTSZ/S:        0x%x/%d", GPT_L0GPTSZ, S_VAL)
        log.info("     PAS region count: %d", PAS_REGION_COUNT)
        for idx, region in enumerate(self._regions()):
            kind = "BLOCK" if region.map_type == MapType.BLOCK else "TABLE"
            log.info("[GPT] ========== GPT L0 %s Desc Generating ==========", kind)
            log.info(
                "[GPT] PAS[%d] base: 0x%x size: 0x%x GPI: 0x%x MapType: 0x%x",
                idx, region.base, region.size, region.gpi, region.map_type,
            )
            if region.map_type == MapType.BLOCK:
                self._generate_l0_blk_desc(region)
            else:
                self._generate_l0_tbl_desc(region)
        log.info("l1 entry count: %x", self.l1_entries_written)
        return count

    # --------------------------------------------------------------- lookup

    def check_pas_gpi(self, address: int) -> int:
        """Return the 64-bit L1 entry that covers ``address``."""
        if not self.l0:
            raise GptError("L0 table is not initialised")
        index = l0_idx(address) if address >= 0 else -1
        if not 0 <= index < len(self.l0):
            raise GptError(f"Address 0x{address:x} is outside the protected space")
        desc = self.l0[index]
        if l0_type(desc) == L0_TYPE_TBL_DESC:
            return self.l1_tables[l0_tbld_index(desc)][self._l1_index(address)]
        return build_l1_desc(l0_blkd_gpi(desc))


__all__ = [
    "GptError",
    "PasRegion",
    "GranuleProtectionTable",
    "get_base_ptr",
    "check_pas_overlap",
    "L0_BLK_DESC_GPI_SHIFT",
]