# scripts/init_db.py
import sqlite3
import os
from cinelog.repo import SCHEMA_SQL, STORAGE_KEY

DB = os.path.join("data", "cinelog.db")
os.makedirs(os.path.dirname(DB), exist_ok=True)
with sqlite3.connect(DB) as c:
    c.executescript(SCHEMA_SQL)
    c.execute("INSERT OR IGNORE INTO kv_store (key, value) VALUES (?, ?)", (STORAGE_KEY, "[]"))
    print("initialized db at", DB)
