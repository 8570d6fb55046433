from .supabase import get_service_supabase, get_supabase

__all__ = ["get_supabase", "get_service_supabase"]
