"""Tests for SupabaseStore against a mocked supabase client."""

from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch
from urllib.parse import urlparse, parse_qs

import pytest
from supabase_auth.helpers import generate_pkce_challenge

from models import SubmissionStatus
from permissions import Role
from supabase_store import SupabaseStore, create_store


def make_query(data=None):
    """Chainable query builder mock whose execute() returns data."""
    query = MagicMock()
    for name in ('select', 'eq', 'in_', 'order', 'limit', 'insert', 'update', 'delete'):
        getattr(query, name).return_value = query
    query.execute.return_value = Mock(data=data if data is not None else [])
    return query


@pytest.fixture
def tables():
    return {}


@pytest.fixture
def client(tables):
    mock_client = MagicMock()
    mock_client.table.side_effect = lambda name: tables.setdefault(name, make_query())
    return mock_client


@pytest.fixture
def store(client):
    return SupabaseStore(client, 'https://project.supabase.co/')


class TestProfiles:
    def test_get_profile(self, store, tables):
        tables['profiles'] = make_query([{'id': 'u1', 'role': 'MODERATOR', 'is_banned': False, 'username': 'mod'}])

        profile = store.get_profile('u1')

        assert profile.role == Role.MODERATOR
        assert profile.username == 'mod'
        tables['profiles'].eq.assert_called_with('id', 'u1')

    def test_get_missing_profile(self, store, tables):
        tables['profiles'] = make_query([])
        assert store.get_profile('nobody') is None

    def test_unknown_role_becomes_viewer(self, store, tables):
        tables['profiles'] = make_query([{'id': 'u1', 'role': 'OWNER', 'is_banned': None}])

        profile = store.get_profile('u1')

        assert profile.role == Role.VIEWER
        assert profile.is_banned is False

    def test_ensure_profile_creates_viewer(self, store, tables):
        tables['profiles'] = make_query([])
        user = SimpleNamespace(id='u2', user_metadata={
            'provider_id': 'tw-99',
            'preferred_username': 'clipper',
            'avatar_url': 'https://avatar',
        })

        profile = store.ensure_profile(user)

        inserted = tables['profiles'].insert.call_args[0][0]
        assert inserted == {
            'id': 'u2',
            'twitch_id': 'tw-99',
            'username': 'clipper',
            'avatar_url': 'https://avatar',
            'role': 'VIEWER',
        }
        assert profile.id == 'u2'
        assert profile.role == Role.VIEWER

    def test_ensure_profile_keeps_existing(self, store, tables):
        tables['profiles'] = make_query([{'id': 'u1', 'role': 'ADMIN'}])

        profile = store.ensure_profile(SimpleNamespace(id='u1', user_metadata={}))

        assert profile.role == Role.ADMIN
        tables['profiles'].insert.assert_not_called()

    def test_list_profiles_by_role(self, store, tables):
        tables['profiles'] = make_query([{'id': 'u1', 'role': 'STREAMER'}])

        profiles = store.list_profiles(role=Role.STREAMER)

        assert [p.id for p in profiles] == ['u1']
        tables['profiles'].eq.assert_called_with('role', 'STREAMER')
        tables['profiles'].order.assert_called_with('created_at', desc=True)

    def test_set_banned(self, store, tables):
        store.set_banned('u1', True)

        update = tables['profiles'].update.call_args[0][0]
        assert update['is_banned'] is True
        tables['profiles'].eq.assert_called_with('id', 'u1')


class TestContests:
    def test_list_contests_counts_submissions(self, store, tables):
        tables['contests'] = make_query([{'id': 'c1'}, {'id': 'c2'}])
        tables['submissions'] = make_query([{'contest_id': 'c1'}, {'contest_id': 'c1'}, {'contest_id': None}])

        contests = store.list_contests(limit=50)

        assert contests == [{'id': 'c1', 'submission_count': 2}, {'id': 'c2', 'submission_count': 0}]
        tables['contests'].limit.assert_called_with(50)
        tables['submissions'].in_.assert_called_with('contest_id', ['c1', 'c2'])

    def test_list_contests_empty(self, store, tables):
        tables['contests'] = make_query([])

        assert store.list_contests() == []
        assert 'submissions' not in tables

    def test_create_contest(self, store, tables):
        tables['contests'] = make_query([{'id': 'c1', 'title': 'Weekly'}])

        contest = store.create_contest({'title': 'Weekly', 'status': 'INACTIVE'})

        row = tables['contests'].insert.call_args[0][0]
        assert row['status'] == 'INACTIVE'
        assert row['submission_count'] == 0
        assert 'display_number' not in row
        assert contest['id'] == 'c1'

    def test_invalid_status_rejected(self, store):
        with pytest.raises(ValueError):
            store.update_contest_status('c1', 'PAUSED')


class TestSubmissions:
    def test_create_submission_forces_unapproved(self, store, tables):
        tables['submissions'] = make_query([{'id': 's1'}])

        store.create_submission({'title': 'Clip', 'status': 'WINNER'})

        row = tables['submissions'].insert.call_args[0][0]
        assert row['status'] == 'UNAPPROVED'

    def test_update_status(self, store, tables):
        store.update_submission_status('s1', SubmissionStatus.WINNER)

        assert tables['submissions'].update.call_args[0][0]['status'] == 'WINNER'

    def test_list_winners_joins_submitter(self, store, tables):
        tables['submissions'] = make_query([{'id': 's1'}])

        assert store.list_winners() == [{'id': 's1'}]
        tables['submissions'].select.assert_called_with('*, submitter:profiles(*)')
        tables['submissions'].eq.assert_called_with('status', 'WINNER')


class TestAuth:
    def test_oauth_url_has_pkce_challenge(self, store):
        url, verifier = store.oauth_url('twitch', 'http://localhost:5001/auth/callback')

        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert url.startswith('https://project.supabase.co/auth/v1/authorize?')
        assert params['provider'] == ['twitch']
        assert params['code_challenge_method'] == ['s256']
        assert params['code_challenge'] == [generate_pkce_challenge(verifier)]
        assert len(verifier) >= 43

    def test_oauth_url_fresh_verifier_each_time(self, store):
        _, first = store.oauth_url('twitch', 'http://localhost:5001/auth/callback')
        _, second = store.oauth_url('twitch', 'http://localhost:5001/auth/callback')
        assert first != second

    @patch('supabase_store.create_client')
    def test_exchange_code_uses_login_client(self, mock_create_client, client):
        store = SupabaseStore(client, 'https://project.supabase.co', 'anon-key')
        login_client = mock_create_client.return_value
        login_client.auth.exchange_code_for_session.return_value = SimpleNamespace(user=SimpleNamespace(id='u1'))

        user = store.exchange_code('code-1', 'verifier-1')

        assert user.id == 'u1'
        login_client.auth.exchange_code_for_session.assert_called_with(
            {'auth_code': 'code-1', 'code_verifier': 'verifier-1'}
        )
        client.auth.exchange_code_for_session.assert_not_called()
        url, key = mock_create_client.call_args[0]
        options = mock_create_client.call_args[1]['options']
        assert (url, key) == ('https://project.supabase.co', 'anon-key')
        assert options.persist_session is False
        assert options.auto_refresh_token is False

    @patch('supabase_store.create_client')
    def test_exchange_code_leaves_store_client_anonymous(self, mock_create_client):
        shared = MagicMock()
        shared.options.headers = {'Authorization': 'Bearer anon-key'}
        store = SupabaseStore(shared, 'https://project.supabase.co', 'anon-key')

        def sign_in(params):
            # What a signed-in client does to its own headers
            mock_create_client.return_value.options.headers['Authorization'] = 'Bearer USER-A-JWT'
            return SimpleNamespace(user=SimpleNamespace(id='user-a'))

        mock_create_client.return_value.options.headers = {'Authorization': 'Bearer anon-key'}
        mock_create_client.return_value.auth.exchange_code_for_session.side_effect = sign_in

        store.exchange_code('code', 'verifier')

        assert shared.options.headers['Authorization'] == 'Bearer anon-key'
        assert mock_create_client.return_value is not shared


class TestCreateStore:
    def test_not_configured(self):
        assert create_store({'SUPABASE_URL': '', 'SUPABASE_KEY': ''}) is None

    @patch('supabase_store.create_client')
    def test_configured(self, mock_create_client):
        store = create_store({'SUPABASE_URL': 'https://project.supabase.co', 'SUPABASE_KEY': 'key'})

        assert isinstance(store, SupabaseStore)
        assert store.client is mock_create_client.return_value
        assert mock_create_client.call_args[0][:2] == ('https://project.supabase.co', 'key')
