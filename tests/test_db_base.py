import pytest

from app.db.base import resolve_database_url


@pytest.mark.parametrize(
    "environ, expected_url, expected_args",
    [
        (
            {"POSTGRES_URL": "postgresql://u:p@db:5432/boards", "DATABASE_URL": "sqlite:///./x.db"},
            "postgresql://u:p@db:5432/boards",
            {},
        ),
        (
            {"SUPABASE_HOST": "db.supabase.co", "SUPABASE_PASSWORD": "pw"},
            "postgresql://postgres:pw@db.supabase.co:5432/postgres",
            {},
        ),
        (
            {"SUPABASE_HOST": "db.supabase.co", "DATABASE_URL": "postgresql://local/boards"},
            "postgresql://local/boards",
            {},
        ),
        ({}, "sqlite:///./app.db", {"check_same_thread": False}),
    ],
    ids=["postgres-url", "supabase-credentials", "supabase-without-password", "sqlite-fallback"],
)
def test_resolve_database_url(environ, expected_url, expected_args):
    assert resolve_database_url(environ) == (expected_url, expected_args)
