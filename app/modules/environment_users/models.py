# Supabase table: environment_users
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- environment_id: uuid (foreign key to environments.id, not null, on delete cascade)
- user_id: uuid (foreign key to auth.users.id, not null)
- role: text (not null, default: 'viewer') - values: admin, editor, viewer
- created_at: timestamp (default: now())
- unique constraint on (environment_id, user_id)
"""
