#!/usr/bin/env python3
"""Contest Clips - video contest submissions and moderation."""

import traceback
from functools import wraps
from urllib.parse import urlencode

from flask import Flask, request, jsonify, redirect, url_for, session, g, current_app, abort
from werkzeug.exceptions import HTTPException

from auth import sanitize_redirect_url
from config import load_config
from models import MODERATION_ACTIONS, ContestStatus, SubmissionStatus
from permissions import (
    AccessCheck, AccessState, Role, ALL_ROLES, MODERATOR_ROLES, STREAMER_ROLES, ADMIN_ROLES,
    parse_role, can_ban, can_change_role
)
from resolver import resolve_with_timeout
from supabase_store import create_store
from video_utils import (
    classify_video_url, canonical_url, fetch_video_metadata, get_embed_url, get_thumbnail_url, DEFAULT_TITLE
)

INVALID_URL_MESSAGE = 'Invalid video URL. Please use a valid YouTube, TikTok or Twitch link.'


def is_api_request():
    """Check if the current request is an API/AJAX request expecting JSON."""
    if request.path.startswith('/api/'):
        return True
    # Check Content-Type header
    if 'application/json' in request.headers.get('Content-Type', ''):
        return True
    # Check Accept header
    if 'application/json' in request.headers.get('Accept', ''):
        return True
    # Check X-Requested-With header (common for AJAX)
    if request.headers.get('X-Requested-With') == 'XMLHttpRequest':
        return True
    return False


def get_store():
    """Get the injected store, or fail the request with 503."""
    store = current_app.extensions.get('contest_store')
    if store is None:
        abort(503, description='Database not configured')
    return store


def get_current_profile():
    """
    Resolve the signed-in caller's profile once per request.

    No session, a failed lookup or a timeout all resolve to None.
    """
    if '_profile' in g:
        return g._profile

    profile = None
    user_id = session.get('user_id')
    store = current_app.extensions.get('contest_store')
    if user_id and store is not None:
        profile = resolve_with_timeout(
            store.get_profile, user_id,
            timeout=current_app.config['PROFILE_TIMEOUT_SECONDS'],
            retries=current_app.config['PROFILE_RETRIES'],
            label='get_profile'
        )
    g._profile = profile
    return profile


def role_required(required_roles):
    """Decorator to require one of the given roles from an unbanned caller."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not session.get('user_id'):
                # For API requests (JSON), return JSON error instead of redirect
                if is_api_request():
                    return jsonify({'success': False, 'error': 'Login required. Please log in.'}), 401
                return redirect(url_for('index'))

            check = AccessCheck(required_roles)
            if check.resolve(get_current_profile) != AccessState.ALLOWED:
                if is_api_request():
                    return jsonify({'success': False, 'error': 'Access denied. Insufficient permissions.'}), 403
                return redirect(url_for('index'))
            return f(*args, **kwargs)
        return decorated_function
    return decorator


# Convenience decorators for each role
def login_required(f):
    return role_required(ALL_ROLES)(f)


def moderator_required(f):
    return role_required(MODERATOR_ROLES)(f)


def streamer_required(f):
    return role_required(STREAMER_ROLES)(f)


def admin_required(f):
    return role_required(ADMIN_ROLES)(f)


def _with_embed(row):
    """Add the player URL to a submission row."""
    try:
        row['embed_url'] = get_embed_url(row['video_id'], row['platform'],
                                         parent=current_app.config['TWITCH_EMBED_PARENT'])
    except (KeyError, ValueError):
        row['embed_url'] = None
    return row


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _set_ban(store, user_id, banned):
    """Apply a ban change after checking the caller may ban the target."""
    target = store.get_profile(user_id)
    if not target:
        return jsonify({'success': False, 'error': 'User not found'}), 404
    if not can_ban(get_current_profile(), target):
        return jsonify({'success': False, 'error': 'You cannot change the ban status of this user'}), 403
    store.set_banned(user_id, banned)
    return jsonify({'success': True, 'is_banned': banned})


def register_routes(app):

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if is_api_request():
            return jsonify({'success': False, 'error': e.description}), e.code
        return e.description, e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        error_msg = f"Error: {str(e)}\n\nTraceback:\n{traceback.format_exc()}"
        print(error_msg)
        if is_api_request():
            return jsonify({'success': False, 'error': 'Internal server error'}), 500
        return 'Internal server error', 500

    @app.route('/')
    def index():
        """Service index with the caller's sign-in state."""
        profile = get_current_profile()
        return jsonify({
            'name': 'Contest Clips',
            'signed_in': profile is not None,
            'role': profile.role.value if profile else None,
            'error': request.args.get('error'),
        })

    @app.route('/favicon.ico')
    def favicon():
        """Return empty favicon to avoid 404 errors."""
        return '', 204

    # Auth

    @app.route('/login')
    def login():
        """Send the browser to the identity provider."""
        store = get_store()
        safe_next = sanitize_redirect_url(request.args.get('next', '/'))
        callback = f"{app.config['APP_URL']}/auth/callback?{urlencode({'next': safe_next})}"
        url, verifier = store.oauth_url(app.config['OAUTH_PROVIDER'], callback)
        session['code_verifier'] = verifier
        return redirect(url)

    @app.route('/auth/callback')
    def auth_callback():
        """Finish OAuth, create the profile on first login, then redirect."""
        code = request.args.get('code')
        safe_next = sanitize_redirect_url(request.args.get('next', '/'))

        if not code:
            return redirect('/?' + urlencode({'error': 'Invalid authorization code'}))

        store = get_store()
        verifier = session.pop('code_verifier', None)
        try:
            user = store.exchange_code(code, verifier)
        except Exception as e:
            # Log the message only, never the full error object
            print(f"[AUTH] Auth error: {e}")
            return redirect('/?' + urlencode({'error': 'Authentication failed'}))

        if user is None:
            return redirect('/?' + urlencode({'error': 'Authentication failed'}))

        try:
            store.ensure_profile(user)
        except Exception as e:
            print(f"[AUTH] Error creating profile: {e}")

        session['user_id'] = user.id
        return redirect(safe_next)

    @app.route('/logout')
    def logout():
        session.clear()
        return redirect(url_for('index'))

    @app.route('/api/me')
    def api_me():
        """Current caller's profile."""
        if not session.get('user_id'):
            return jsonify({'success': False, 'error': 'Login required. Please log in.'}), 401
        profile = get_current_profile()
        if profile is None:
            return jsonify({'success': False, 'error': 'Profile unavailable'}), 401
        return jsonify({'success': True, 'profile': profile.to_dict()})

    # Video links

    @app.route('/api/validate-url', methods=['POST'])
    def api_validate_url():
        """Check a link without submitting it."""
        reference = classify_video_url(_json_body().get('url'))
        if reference is None:
            return jsonify({'valid': False, 'error': INVALID_URL_MESSAGE})
        return jsonify(dict(reference.to_dict(), valid=True))

    # Contests

    @app.route('/api/contests', methods=['GET'])
    def api_list_contests():
        """Latest contests with submission counts."""
        store = get_store()
        try:
            contests = store.list_contests(limit=app.config['CONTEST_LIST_LIMIT'])
        except Exception as e:
            print(f"[STORE] Failed to load contests: {e}")
            return jsonify({'error': 'Failed to load contests'}), 500

        response = jsonify({'contests': contests})
        response.headers['Cache-Control'] = 'no-store'
        return response

    @app.route('/api/contests/<contest_id>', methods=['GET'])
    def api_get_contest(contest_id):
        contest = get_store().get_contest(contest_id)
        if not contest:
            return jsonify({'success': False, 'error': 'Contest not found'}), 404
        return jsonify({'success': True, 'contest': contest})

    @app.route('/api/contests', methods=['POST'])
    @streamer_required
    def api_create_contest():
        """Create a new contest."""
        data = _json_body()
        title = str(data.get('title') or '').strip()
        status = str(data.get('status') or ContestStatus.ACTIVE.value).upper()
        tags = data.get('tags') or []

        if not title:
            return jsonify({'success': False, 'error': 'Title is required'}), 400
        if status not in ContestStatus.__members__:
            return jsonify({'success': False, 'error': 'Invalid status'}), 400
        if not isinstance(tags, list):
            return jsonify({'success': False, 'error': 'Tags must be a list'}), 400

        contest = get_store().create_contest({
            'title': title,
            'description': str(data.get('description') or '').strip(),
            'status': status,
            'tags': tags,
            'display_number': data.get('display_number'),
        })
        return jsonify({'success': True, 'contest': contest}), 201

    @app.route('/api/contests/<contest_id>/status', methods=['POST'])
    @streamer_required
    def api_update_contest_status(contest_id):
        status = str(_json_body().get('status') or '').upper()
        if status not in ContestStatus.__members__:
            return jsonify({'success': False, 'error': 'Invalid status'}), 400

        store = get_store()
        if not store.get_contest(contest_id):
            return jsonify({'success': False, 'error': 'Contest not found'}), 404
        store.update_contest_status(contest_id, status)
        return jsonify({'success': True, 'status': status})

    @app.route('/api/contests/<contest_id>', methods=['DELETE'])
    @streamer_required
    def api_delete_contest(contest_id):
        get_store().delete_contest(contest_id)
        return jsonify({'success': True})

    # Submissions

    @app.route('/api/contests/<contest_id>/submissions', methods=['POST'])
    @login_required
    def api_submit_video(contest_id):
        """Submit a video link to an active contest."""
        data = _json_body()
        link = str(data.get('url') or '').strip()
        title = str(data.get('title') or '').strip()

        reference = classify_video_url(link)
        if reference is None:
            return jsonify({'success': False, 'error': INVALID_URL_MESSAGE}), 400

        store = get_store()
        contest = store.get_contest(contest_id)
        if not contest:
            return jsonify({'success': False, 'error': 'Contest not found'}), 404
        if contest.get('status') != ContestStatus.ACTIVE.value:
            return jsonify({'success': False, 'error': 'Contest is not accepting submissions'}), 400

        thumbnail_url = get_thumbnail_url(reference.video_id, reference.platform)
        if not title:
            metadata = fetch_video_metadata(
                reference.video_id, reference.platform,
                api_key=app.config['YOUTUBE_API_KEY'],
                timeout=app.config['METADATA_TIMEOUT_SECONDS']
            )
            title = metadata.get('title') or DEFAULT_TITLE
            thumbnail_url = metadata.get('thumbnail_url') or thumbnail_url

        submission = store.create_submission({
            'title': title,
            'platform': reference.platform.value,
            'video_url': canonical_url(reference),
            'video_id': reference.video_id,
            'submitter_id': get_current_profile().id,
            'contest_id': contest_id,
            'thumbnail_url': thumbnail_url,
            'submission_comment': str(data.get('comment') or '').strip(),
        })
        return jsonify({'success': True, 'submission': _with_embed(submission)}), 201

    @app.route('/api/contests/<contest_id>/submissions', methods=['GET'])
    @moderator_required
    def api_list_submissions(contest_id):
        """Submissions for review, optionally filtered by status."""
        status = request.args.get('status', '').upper() or None
        if status and status not in SubmissionStatus.__members__:
            return jsonify({'success': False, 'error': 'Invalid status'}), 400

        submissions = get_store().list_submissions(contest_id, status=status)
        return jsonify({'success': True, 'submissions': [_with_embed(s) for s in submissions]})

    @app.route('/api/submissions/<submission_id>/moderate', methods=['POST'])
    @moderator_required
    def api_moderate_submission(submission_id):
        """Approve, deny, mark as winner or reset a submission."""
        action = str(_json_body().get('action') or '').upper()
        if action not in MODERATION_ACTIONS:
            return jsonify({'success': False, 'error': 'Invalid action'}), 400

        store = get_store()
        if not store.get_submission(submission_id):
            return jsonify({'success': False, 'error': 'Submission not found'}), 404

        new_status = MODERATION_ACTIONS[action]
        store.update_submission_status(submission_id, new_status)
        return jsonify({'success': True, 'status': new_status.value})

    @app.route('/api/submissions/<submission_id>', methods=['DELETE'])
    @moderator_required
    def api_delete_submission(submission_id):
        get_store().delete_submission(submission_id)
        return jsonify({'success': True})

    @app.route('/api/submissions/<submission_id>/ban-submitter', methods=['POST'])
    @moderator_required
    def api_ban_submitter(submission_id):
        """Ban the author of a submission."""
        store = get_store()
        submission = store.get_submission(submission_id)
        if not submission or not submission.get('submitter_id'):
            return jsonify({'success': False, 'error': 'Submission not found'}), 404
        return _set_ban(store, submission['submitter_id'], True)

    @app.route('/api/winners')
    def api_winners():
        winners = get_store().list_winners()
        return jsonify({'success': True, 'winners': [_with_embed(w) for w in winners]})

    # Users

    @app.route('/api/users')
    @moderator_required
    def api_list_users():
        """User management list, optionally filtered by role."""
        role_filter = request.args.get('role', 'ALL').upper()
        role = None
        if role_filter != 'ALL':
            role = parse_role(role_filter)
            if role is None:
                return jsonify({'success': False, 'error': 'Invalid role'}), 400

        profiles = get_store().list_profiles(role=role)
        return jsonify({'success': True, 'users': [p.to_dict() for p in profiles]})

    @app.route('/api/users/<user_id>/role', methods=['POST'])
    @moderator_required
    def api_update_role(user_id):
        """Change a user's role."""
        new_role = parse_role(_json_body().get('role'))
        if new_role is None:
            return jsonify({'success': False, 'error': 'Invalid role'}), 400

        store = get_store()
        target = store.get_profile(user_id)
        if not target:
            return jsonify({'success': False, 'error': 'User not found'}), 404

        if not can_change_role(get_current_profile(), target, new_role):
            return jsonify({'success': False, 'error': 'Only admins can manage admin and streamer roles'}), 403

        # Don't allow demoting the last admin
        if target.role == Role.ADMIN and new_role != Role.ADMIN and store.count_admins() <= 1:
            return jsonify({'success': False, 'error': 'Cannot demote the last admin'}), 400

        store.update_role(user_id, new_role)
        return jsonify({'success': True, 'role': new_role.value})

    @app.route('/api/users/<user_id>/ban', methods=['POST'])
    @moderator_required
    def api_ban_user(user_id):
        """Ban or unban a user."""
        banned = _json_body().get('banned', True)
        if not isinstance(banned, bool):
            return jsonify({'success': False, 'error': 'banned must be true or false'}), 400
        return _set_ban(get_store(), user_id, banned)

    @app.route('/api/users/<user_id>', methods=['DELETE'])
    @admin_required
    def api_delete_user(user_id):
        if user_id == get_current_profile().id:
            return jsonify({'success': False, 'error': 'You cannot delete your own account'}), 400
        get_store().delete_profile(user_id)
        return jsonify({'success': True})

    # Tags

    @app.route('/api/tags', methods=['GET'])
    def api_list_tags():
        return jsonify({'success': True, 'tags': get_store().list_tags()})

    @app.route('/api/tags', methods=['POST'])
    @streamer_required
    def api_add_tag():
        name = str(_json_body().get('name') or '').strip()
        if not name:
            return jsonify({'success': False, 'error': 'Name is required'}), 400
        return jsonify({'success': True, 'tag': get_store().add_tag(name)}), 201

    @app.route('/api/tags/<tag_id>', methods=['DELETE'])
    @streamer_required
    def api_delete_tag(tag_id):
        get_store().delete_tag(tag_id)
        return jsonify({'success': True})


def create_app(store=None, config=None):
    """
    Build the Flask app.

    Args:
        store: SupabaseStore (or compatible) instance; built from config
            when omitted
        config: Overrides for values read from the environment
    """
    app = Flask(__name__)
    settings = load_config()
    settings.update(config or {})
    app.config.update(settings)
    app.secret_key = settings['SECRET_KEY']

    if store is None:
        store = create_store(settings)
    app.extensions['contest_store'] = store

    register_routes(app)
    return app


app = create_app()


if __name__ == '__main__':
    import os
    port = int(os.environ.get('PORT', 5001))
    debug = os.environ.get('FLASK_ENV', 'development') == 'development'
    print("\n=== Contest Clips ===")
    print(f"Database: {'Supabase' if app.extensions['contest_store'] else 'NOT CONFIGURED'}")
    print(f"Open http://localhost:{port} in your browser\n")
    app.run(debug=debug, host='0.0.0.0', port=port)
