"""Store backends."""

from ledger_doctor.store.base import LedgerStore
from ledger_doctor.store.memory import MemoryStore
from ledger_doctor.store.supabase import SupabaseStore

__all__ = ["LedgerStore", "MemoryStore", "SupabaseStore"]
