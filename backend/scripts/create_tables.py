import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from db import ensure_user, get_conn, init_schema
from settings import settings

print('Connecting to', settings.db_url)
with get_conn() as conn:
    init_schema(conn)
    ensure_user(conn, settings.default_user, settings.default_user_email)
print('DDL applied, default user', settings.default_user, 'ready')
