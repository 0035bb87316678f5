# Supabase table: accounts
# Rows are written by the OAuth connect flow (GitHub / Vercel), which lives
# outside this service. The deployment pipeline only reads them.

"""
Expected Supabase table structure:
- id: uuid (primary key)
- user_id: uuid (foreign key to auth.users.id, not null)
- provider: text (not null) - values: github, vercel
- access_token: text (nullable)
- expires_at: bigint (nullable) - unix seconds; expired tokens are treated as not connected
- created_at: timestamp (default: now())
"""
