"""
Supabase persistence

Thin wrapper over an injected supabase Client covering the profiles,
contests, submissions and contest_tags tables plus the OAuth code exchange.
Backend errors propagate to the caller.
"""

from datetime import datetime, timezone
from urllib.parse import urlencode

from supabase import create_client, Client, ClientOptions
from supabase_auth.helpers import generate_pkce_challenge, generate_pkce_verifier

from models import Profile, SubmissionStatus, ContestStatus
from permissions import Role


def create_store(config):
    """Build a SupabaseStore from config, or None when not configured."""
    url = config.get('SUPABASE_URL')
    key = config.get('SUPABASE_KEY')
    if not url or not key:
        print("[STARTUP] WARNING: Supabase NOT configured!")
        print("[STARTUP] Create a .env file with SUPABASE_URL and SUPABASE_KEY")
        return None

    client: Client = create_client(url, key, options=ClientOptions(flow_type='pkce'))
    print(f"[STARTUP] Supabase connected: URL={url[:30]}...")
    return SupabaseStore(client, url, key)


def _now():
    return datetime.now(timezone.utc).isoformat()


class SupabaseStore:
    """Data access for the contest tables."""

    def __init__(self, client, supabase_url='', supabase_key=''):
        self.client = client
        self.supabase_url = supabase_url.rstrip('/')
        self.supabase_key = supabase_key

    # Auth

    def oauth_url(self, provider, redirect_to):
        """
        Build the provider sign-in URL.

        Returns:
            (url, code_verifier); the verifier must be kept for exchange_code
        """
        verifier = generate_pkce_verifier()
        query = urlencode({
            'provider': provider,
            'redirect_to': redirect_to,
            'code_challenge': generate_pkce_challenge(verifier),
            'code_challenge_method': 's256',
        })
        return f"{self.supabase_url}/auth/v1/authorize?{query}", verifier

    def _login_client(self):
        # Signing in re-authorizes a client's table requests as that user,
        # so each exchange gets its own client and self.client stays anonymous
        return create_client(self.supabase_url, self.supabase_key, options=ClientOptions(
            flow_type='pkce',
            persist_session=False,
            auto_refresh_token=False,
        ))

    def exchange_code(self, code, code_verifier, redirect_to=None):
        """Exchange an OAuth code for a session and return the auth user."""
        params = {'auth_code': code, 'code_verifier': code_verifier}
        if redirect_to:
            params['redirect_to'] = redirect_to
        response = self._login_client().auth.exchange_code_for_session(params)
        return response.user

    # Profiles

    def get_profile(self, user_id):
        """Get a profile by auth user ID."""
        result = self.client.table('profiles').select('*').eq('id', user_id).limit(1).execute()
        return Profile.from_row(result.data[0]) if result.data else None

    def ensure_profile(self, user):
        """Return the user's profile, creating a VIEWER profile on first login."""
        existing = self.get_profile(user.id)
        if existing:
            return existing

        metadata = getattr(user, 'user_metadata', None) or {}
        row = {
            'id': user.id,
            'twitch_id': metadata.get('provider_id'),
            'username': metadata.get('preferred_username') or metadata.get('name') or 'Unknown',
            'avatar_url': metadata.get('avatar_url'),
            'role': Role.VIEWER.value,
        }
        result = self.client.table('profiles').insert(row).execute()
        return Profile.from_row(result.data[0] if result.data else row)

    def list_profiles(self, role=None):
        """List profiles newest first, optionally filtered by role."""
        query = self.client.table('profiles').select('*')
        if role:
            query = query.eq('role', role.value if isinstance(role, Role) else role)
        result = query.order('created_at', desc=True).execute()
        return [Profile.from_row(row) for row in result.data]

    def count_admins(self):
        result = self.client.table('profiles').select('id').eq('role', Role.ADMIN.value).execute()
        return len(result.data)

    def update_role(self, user_id, role):
        self.client.table('profiles').update({'role': Role(role).value, 'updated_at': _now()}).eq('id', user_id).execute()

    def set_banned(self, user_id, banned):
        self.client.table('profiles').update({'is_banned': bool(banned), 'updated_at': _now()}).eq('id', user_id).execute()

    def delete_profile(self, user_id):
        self.client.table('profiles').delete().eq('id', user_id).execute()

    # Contests

    def list_contests(self, limit=50):
        """Latest contests with a submission_count per contest."""
        result = self.client.table('contests') \
            .select('id, title, description, status, display_number, tags, created_at, updated_at') \
            .order('created_at', desc=True) \
            .limit(limit) \
            .execute()
        contests = result.data or []
        if not contests:
            return []

        contest_ids = [c['id'] for c in contests]
        submissions = self.client.table('submissions').select('contest_id').in_('contest_id', contest_ids).execute()

        counts = {}
        for row in submissions.data or []:
            contest_id = row.get('contest_id')
            if contest_id:
                counts[contest_id] = counts.get(contest_id, 0) + 1

        return [dict(c, submission_count=counts.get(c['id'], 0)) for c in contests]

    def get_contest(self, contest_id):
        result = self.client.table('contests').select('*').eq('id', contest_id).limit(1).execute()
        return result.data[0] if result.data else None

    def create_contest(self, contest_data):
        """Insert a contest and return the stored row."""
        row = {
            'title': contest_data['title'],
            'description': contest_data.get('description', ''),
            'status': ContestStatus(contest_data.get('status', ContestStatus.ACTIVE)).value,
            'tags': contest_data.get('tags') or [],
            'submission_count': 0,
        }
        if contest_data.get('display_number') is not None:
            row['display_number'] = contest_data['display_number']
        result = self.client.table('contests').insert(row).execute()
        return result.data[0] if result.data else row

    def update_contest_status(self, contest_id, status):
        self.client.table('contests').update({'status': ContestStatus(status).value, 'updated_at': _now()}).eq('id', contest_id).execute()

    def delete_contest(self, contest_id):
        self.client.table('contests').delete().eq('id', contest_id).execute()

    # Submissions

    def create_submission(self, submission_data):
        """Insert a submission; new submissions always start UNAPPROVED."""
        row = dict(submission_data, status=SubmissionStatus.UNAPPROVED.value)
        result = self.client.table('submissions').insert(row).execute()
        return result.data[0] if result.data else row

    def get_submission(self, submission_id):
        result = self.client.table('submissions').select('*').eq('id', submission_id).limit(1).execute()
        return result.data[0] if result.data else None

    def list_submissions(self, contest_id, status=None):
        """Submissions for a contest with their submitter, newest first."""
        query = self.client.table('submissions').select('*, submitter:profiles(*)').eq('contest_id', contest_id)
        if status:
            query = query.eq('status', SubmissionStatus(status).value)
        result = query.order('created_at', desc=True).execute()
        return result.data

    def update_submission_status(self, submission_id, status):
        self.client.table('submissions').update({'status': SubmissionStatus(status).value, 'updated_at': _now()}).eq('id', submission_id).execute()

    def delete_submission(self, submission_id):
        self.client.table('submissions').delete().eq('id', submission_id).execute()

    def list_winners(self):
        result = self.client.table('submissions') \
            .select('*, submitter:profiles(*)') \
            .eq('status', SubmissionStatus.WINNER.value) \
            .order('updated_at', desc=True) \
            .execute()
        return result.data

    # Tags

    def list_tags(self):
        result = self.client.table('contest_tags').select('*').order('name').execute()
        return result.data

    def add_tag(self, name):
        result = self.client.table('contest_tags').insert({'name': name}).execute()
        return result.data[0] if result.data else {'name': name}

    def delete_tag(self, tag_id):
        self.client.table('contest_tags').delete().eq('id', tag_id).execute()
