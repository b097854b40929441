"""
Supabase database service - client factories

Services never create clients themselves: the caller builds one here and
passes it in (application-scoped service role client, or a request-scoped
client carrying the signed-in user's session).
"""

import os
from functools import lru_cache
from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions
from dotenv import load_dotenv

load_dotenv()


def _schema() -> str:
    return os.getenv("SUPABASE_SCHEMA", "public")


@lru_cache()
def get_supabase() -> Client:
    """Get Supabase client with service role key (cached, application-scoped)"""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    if not url or not key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

    opts = ClientOptions(schema=_schema())
    return create_client(url, key, options=opts)


def get_anon_client() -> Client:
    """Get Supabase client with anon key (for auth)"""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_ANON_KEY")

    if not url or not key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")

    opts = ClientOptions(schema=_schema())
    return create_client(url, key, options=opts)


def get_user_client(access_token: str, refresh_token: str) -> Client:
    """
    Get request-scoped client acting as the signed-in user.

    Row level security applies to every query made with this client, and
    client.auth.get_user() returns the session owner.
    """
    client = get_anon_client()
    client.auth.set_session(access_token, refresh_token)
    return client
