#!/usr/bin/env python3
"""Check the .env file and the storage settings the API will start with."""

from pathlib import Path
import os
import sys

TEMPLATE = """# Storage backend: memory (default) or supabase
FRESHTICK_STORAGE_BACKEND=memory

# Supabase Configuration (required when FRESHTICK_STORAGE_BACKEND=supabase)
# Apply sql/schema.sql to the project before switching backends.
FRESHTICK_SUPABASE_URL=https://your-project-id.supabase.co
FRESHTICK_SUPABASE_KEY=your-service-role-key-here

# API Configuration
FRESHTICK_API_PREFIX=/api
FRESHTICK_LOG_LEVEL=INFO
# FRESHTICK_FRONTEND_ALLOWED_ORIGINS=http://localhost:5173,http://127.0.0.1:5173

# Proof-of-delivery images are stored below this directory
FRESHTICK_DATA_ROOT=./data

# Behaviour switches
# FRESHTICK_STRICT_GEOMETRY=false
# FRESHTICK_STRICT_ORDER_SYNC=false
# FRESHTICK_TIMEZONE=Asia/Kolkata
"""


def _masked(value: str) -> str:
    return value[:20] + "..." + value[-10:] if len(value) > 30 else value


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Freshtick Environment Checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        print(f"❌ .env file NOT found at: {env_file}")
        with open(env_file, "w", encoding="utf-8") as f:
            f.write(TEMPLATE)
        print(f"✅ Created template .env file at: {env_file}")
        print("⚠️  Edit it and restart the backend.")
        return

    print(f"✅ Found .env file at: {env_file}")
    print("-" * 60)
    with open(env_file, "r", encoding="utf-8") as f:
        for line in f.read().splitlines():
            name, sep, value = line.partition("=")
            if sep and name.strip() == "FRESHTICK_SUPABASE_KEY":
                print(f"{name}={_masked(value.strip())}")
            else:
                print(line)
    print("-" * 60)
    print()

    for name in ("FRESHTICK_STORAGE_BACKEND", "FRESHTICK_SUPABASE_URL", "FRESHTICK_SUPABASE_KEY"):
        if os.getenv(name):
            print(f"✅ {name} set in environment")
        else:
            print(f"ℹ️  {name} not set in environment (the .env file is used instead)")
    print()

    try:
        sys.path.insert(0, str(project_root / "src"))
        from freshtick.config import settings
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print("Make sure you're running this from the project root directory")
        return

    print(f"Storage backend: {settings.storage_backend}")
    print(f"Data root:       {settings.data_root}")
    print(f"Timezone:        {settings.timezone}")
    print()
    if settings.storage_backend != "supabase":
        print("✅ In-memory store selected; no database needed.")
    elif settings.supabase_url and settings.supabase_key:
        print("✅ SUCCESS: Supabase is configured!")
    else:
        print("❌ ERROR: Supabase backend selected but FRESHTICK_SUPABASE_URL/KEY are missing")
        print("   The API will fall back to the in-memory store.")


if __name__ == "__main__":
    main()
