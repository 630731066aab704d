"""Shared pytest fixtures for Contest Clips tests."""

import sys
import uuid
from pathlib import Path

import pytest

# Add project root to path for imports
root_path = Path(__file__).parent.parent
if str(root_path) not in sys.path:
    sys.path.insert(0, str(root_path))

from models import Profile, SubmissionStatus, ContestStatus  # noqa: E402
from permissions import Role  # noqa: E402


class FakeStore:
    """In-memory stand-in for SupabaseStore."""

    def __init__(self):
        self.profiles = {}
        self.contests = {}
        self.submissions = {}
        self.tags = {}
        self.exchange_user = None
        self.exchange_error = None
        self.exchange_calls = []
        self.profile_error = None

    def add_profile(self, user_id, role=Role.VIEWER, is_banned=False, username=None):
        profile = Profile(id=user_id, role=Role(role), is_banned=is_banned, username=username or user_id)
        self.profiles[user_id] = profile
        return profile

    def add_contest(self, title='Best Clip', status=ContestStatus.ACTIVE):
        contest_id = str(uuid.uuid4())
        self.contests[contest_id] = {
            'id': contest_id,
            'title': title,
            'description': '',
            'status': ContestStatus(status).value,
            'tags': [],
        }
        return self.contests[contest_id]

    def add_submission(self, contest_id, submitter_id, status=SubmissionStatus.UNAPPROVED, **fields):
        submission_id = str(uuid.uuid4())
        row = {
            'id': submission_id,
            'contest_id': contest_id,
            'submitter_id': submitter_id,
            'title': 'Clip',
            'platform': 'YOUTUBE',
            'video_id': 'dQw4w9WgXcQ',
            'video_url': 'https://youtu.be/dQw4w9WgXcQ',
            'status': SubmissionStatus(status).value,
        }
        row.update(fields)
        self.submissions[submission_id] = row
        return row

    # Auth

    def oauth_url(self, provider, redirect_to):
        return f'https://auth.example.com/authorize?provider={provider}', 'verifier-123'

    def exchange_code(self, code, code_verifier, redirect_to=None):
        self.exchange_calls.append((code, code_verifier))
        if self.exchange_error:
            raise self.exchange_error
        return self.exchange_user

    # Profiles

    def get_profile(self, user_id):
        if self.profile_error:
            raise self.profile_error
        return self.profiles.get(user_id)

    def ensure_profile(self, user):
        if user.id not in self.profiles:
            metadata = user.user_metadata or {}
            self.add_profile(user.id, username=metadata.get('preferred_username') or 'Unknown')
        return self.profiles[user.id]

    def list_profiles(self, role=None):
        return [p for p in self.profiles.values() if role is None or p.role == role]

    def count_admins(self):
        return sum(1 for p in self.profiles.values() if p.role == Role.ADMIN)

    def update_role(self, user_id, role):
        self.profiles[user_id].role = Role(role)

    def set_banned(self, user_id, banned):
        self.profiles[user_id].is_banned = banned

    def delete_profile(self, user_id):
        self.profiles.pop(user_id, None)

    # Contests

    def list_contests(self, limit=50):
        contests = list(self.contests.values())[:limit]
        return [
            dict(c, submission_count=sum(1 for s in self.submissions.values() if s['contest_id'] == c['id']))
            for c in contests
        ]

    def get_contest(self, contest_id):
        return self.contests.get(contest_id)

    def create_contest(self, contest_data):
        contest = self.add_contest(contest_data['title'], contest_data.get('status', ContestStatus.ACTIVE))
        contest.update({k: v for k, v in contest_data.items() if k != 'status'})
        return contest

    def update_contest_status(self, contest_id, status):
        self.contests[contest_id]['status'] = ContestStatus(status).value

    def delete_contest(self, contest_id):
        self.contests.pop(contest_id, None)

    # Submissions

    def create_submission(self, submission_data):
        return self.add_submission(**submission_data)

    def get_submission(self, submission_id):
        return self.submissions.get(submission_id)

    def list_submissions(self, contest_id, status=None):
        return [
            dict(s) for s in self.submissions.values()
            if s['contest_id'] == contest_id and (status is None or s['status'] == status)
        ]

    def update_submission_status(self, submission_id, status):
        self.submissions[submission_id]['status'] = SubmissionStatus(status).value

    def delete_submission(self, submission_id):
        self.submissions.pop(submission_id, None)

    def list_winners(self):
        return [dict(s) for s in self.submissions.values() if s['status'] == SubmissionStatus.WINNER.value]

    # Tags

    def list_tags(self):
        return sorted(self.tags.values(), key=lambda t: t['name'])

    def add_tag(self, name):
        tag = {'id': str(uuid.uuid4()), 'name': name}
        self.tags[tag['id']] = tag
        return tag

    def delete_tag(self, tag_id):
        self.tags.pop(tag_id, None)


@pytest.fixture
def store():
    """Empty in-memory store."""
    return FakeStore()


@pytest.fixture
def flask_app(store):
    """Flask app wired to the fake store."""
    from app import create_app

    test_app = create_app(store=store, config={
        'SECRET_KEY': 'test-secret',
        'APP_URL': 'http://localhost:5001',
        'TWITCH_EMBED_PARENT': 'localhost',
        'PROFILE_TIMEOUT_SECONDS': 1,
        'PROFILE_RETRIES': 0,
        'YOUTUBE_API_KEY': '',
    })
    test_app.config['TESTING'] = True
    return test_app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def login(client, store):
    """Sign a user in with the given role and return their profile."""
    def _login(user_id='user-1', role=Role.VIEWER, is_banned=False):
        profile = store.profiles.get(user_id) or store.add_profile(user_id, role=role, is_banned=is_banned)
        with client.session_transaction() as sess:
            sess['user_id'] = user_id
        return profile
    return _login
