"""Reconciliation core for importing flat rows into the record store.

Layered flow per row:
1) unflatten the row into the nested record shape (``codec``)
2) resolve relation cells to references by natural key (``relations``)
3) carry stored component ids onto incoming blocks (``components``)
4) compare against the stored record (``diff``)
5) create, update or skip inside a unit of work (``reconciler``)
"""

from __future__ import annotations

from .codec import RowCodec, is_blank, parse_json_if_needed, split_list
from .components import merge_components
from .diff import DIFF_IGNORED_KEYS, has_changes
from .reconciler import BulkReconciler, has_identifier
from .relations import RelationResolver

__all__ = [
    "DIFF_IGNORED_KEYS",
    "BulkReconciler",
    "RelationResolver",
    "RowCodec",
    "has_changes",
    "has_identifier",
    "is_blank",
    "merge_components",
    "parse_json_if_needed",
    "split_list",
]
