"""
Backend package for the driving-school site.

Flask application serving the static site plus the documents, users and
authentication API, backed by Postgres or Supabase.
"""
