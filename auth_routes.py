import logging
import os
import secrets
import uuid
from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request, send_from_directory
from sqlalchemy.exc import IntegrityError
from werkzeug.utils import secure_filename

from auth import (
    clear_auth_cookie, hash_password, hash_reset_token, login_required, new_reset_token,
    set_auth_cookie, verify_password,
)
from extensions import db
from models import HrSchedule, User, utcnow
from utilities.email import send_password_reset_email
from utilities.validators import looks_like_email, normalize_email

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
RESET_SENT = {'message': 'Reset link sent if email exists'}
PROFILE_IMAGE_DIR = 'profile-images'
PROFILE_IMAGE_URL = '/uploads/profile-images/'
IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp'}
MAX_PROFILE_IMAGE_BYTES = 5 * 1024 * 1024


def _profile_image_dir():
    settings = current_app.config['SETTINGS']
    folder = os.path.join(current_app.root_path, settings.upload_folder, PROFILE_IMAGE_DIR)
    os.makedirs(folder, exist_ok=True)
    return folder


def _remove_profile_image(stored_path):
    """Delete the file behind a stored ``/uploads/profile-images/<name>`` path."""
    name = secure_filename(os.path.basename(stored_path or ''))
    if not name:
        return
    try:
        os.remove(os.path.join(_profile_image_dir(), name))
    except FileNotFoundError:
        logger.warning("Profile image %s was already gone", name)


def init_app(app):
    """Registers signup/signin/logout, password reset, profile, avatar and guest access under /api."""
    bp = Blueprint('auth', __name__, url_prefix='/api')

    @bp.route('/signup', methods=['POST'])
    def signup():
        data = request.get_json(silent=True) or {}
        name = (data.get('name') or '').strip()
        email = normalize_email(data.get('email'))
        password = data.get('password') or ''

        if not name or not email or not password:
            return jsonify({'message': 'Name, email and password are required'}), 400
        if not looks_like_email(email):
            return jsonify({'message': 'Invalid email address'}), 400
        if len(password) < MIN_PASSWORD_LENGTH:
            return jsonify({'message': f'Password must be at least {MIN_PASSWORD_LENGTH} characters'}), 400
        if User.query.filter_by(email=email).first():
            return jsonify({'message': 'Email already exists'}), 409

        user = User(name=name, email=email, password_hash=hash_password(password))
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return jsonify({'message': 'Email already exists'}), 409

        resp = jsonify({'message': 'User registered successfully', 'user': user.to_public_dict()})
        resp.status_code = 201
        return set_auth_cookie(resp, user)

    @bp.route('/signin', methods=['POST'])
    def signin():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get('email'))
        password = data.get('password') or ''
        if not email or not password:
            return jsonify({'message': 'Email and password are required'}), 400

        user = User.query.filter_by(email=email).first()
        # Same answer for unknown email and wrong password
        if user is None or not verify_password(user.password_hash, password):
            return jsonify({'message': 'Email or password is incorrect!'}), 404

        resp = jsonify({'message': 'User signed in successfully', 'user': user.to_public_dict()})
        return set_auth_cookie(resp, user)

    @bp.route('/logout', methods=['GET', 'POST'])
    def logout():
        resp = jsonify({'message': 'User logged out successfully'})
        return clear_auth_cookie(resp)

    @bp.route('/forgot-password', methods=['POST'])
    def forgot_password():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get('email'))
        if not email:
            return jsonify({'message': 'Email is required'}), 400

        user = User.query.filter_by(email=email).first()
        if user is None:
            return jsonify(RESET_SENT)

        settings = current_app.config['SETTINGS']
        token, token_hash = new_reset_token()
        user.reset_password_token = token_hash
        user.reset_password_expire = utcnow() + timedelta(minutes=settings.reset_token_minutes)
        db.session.commit()

        reset_link = f"{settings.client_url.rstrip('/')}/reset-password/{token}"
        sent, error = send_password_reset_email(settings, user.email, reset_link, settings.reset_token_minutes)
        if not sent:
            logger.warning("Password reset email to %s not sent: %s", user.email, error)
        return jsonify(RESET_SENT)

    @bp.route('/reset-password/<token>', methods=['POST'])
    def reset_password(token):
        data = request.get_json(silent=True) or {}
        password = data.get('password') or ''
        if len(password) < MIN_PASSWORD_LENGTH:
            return jsonify({'message': f'Password must be at least {MIN_PASSWORD_LENGTH} characters'}), 400

        user = User.query.filter(
            User.reset_password_token == hash_reset_token(token),
            User.reset_password_expire > utcnow(),
        ).first()
        if user is None:
            return jsonify({'message': 'Invalid or expired reset token'}), 400

        user.password_hash = hash_password(password)
        user.reset_password_token = None
        user.reset_password_expire = None
        db.session.commit()
        return jsonify({'message': 'Password reset successful'})

    @bp.route('/profile', methods=['GET'])
    @login_required
    def profile():
        return jsonify({'user': g.user.to_public_dict()})

    @bp.route('/upload-profile-image', methods=['POST'])
    @login_required
    def upload_profile_image():
        """Stores a new avatar and removes the one it replaces."""
        upload = request.files.get('profileImage')
        if upload is None or not upload.filename:
            return jsonify({'message': 'No file uploaded'}), 400
        ext = os.path.splitext(secure_filename(upload.filename))[1].lower()
        if ext not in IMAGE_EXTENSIONS:
            return jsonify({'message': 'Only image files are allowed'}), 400
        content = upload.read()
        if len(content) > MAX_PROFILE_IMAGE_BYTES:
            return jsonify({'message': 'Image must be 5MB or smaller'}), 413

        filename = f"{g.user.id}-{uuid.uuid4().hex}{ext}"
        with open(os.path.join(_profile_image_dir(), filename), 'wb') as fh:
            fh.write(content)

        previous = g.user.profile_image
        g.user.profile_image = PROFILE_IMAGE_URL + filename
        db.session.commit()
        if previous:
            _remove_profile_image(previous)

        logger.info("Stored profile image %s for user %s", filename, g.user.id)
        return jsonify({'message': 'Profile image uploaded successfully', 'profileImage': g.user.profile_image})

    @bp.route('/delete-profile-image', methods=['DELETE'])
    @login_required
    def delete_profile_image():
        if not g.user.profile_image:
            return jsonify({'message': 'No profile image to delete'}), 400
        _remove_profile_image(g.user.profile_image)
        g.user.profile_image = None
        db.session.commit()
        return jsonify({'message': 'Profile image deleted successfully'})

    @bp.route('/guest-access/<token>', methods=['POST'])
    def guest_access(token):
        """Lets an invited candidate in with the invite token plus their name and email."""
        data = request.get_json(silent=True) or {}
        name = (data.get('name') or '').strip()
        email = normalize_email(data.get('email'))
        if not token or not name or not email:
            return jsonify({'message': 'Token, name, and email are required'}), 400

        schedule = HrSchedule.query.filter_by(invite_token=token, status='scheduled').first()
        if schedule is None:
            return jsonify({'message': 'Invalid or expired interview link'}), 404
        if schedule.candidate_email != email:
            return jsonify({'message': 'Email does not match scheduled candidate'}), 403

        settings = current_app.config['SETTINGS']
        if utcnow() > schedule.scheduled_at + timedelta(hours=settings.invite_expiry_hours):
            return jsonify({'message': 'This interview link has expired'}), 410

        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(name=name, email=email, password_hash=hash_password(secrets.token_hex(24)))
            db.session.add(user)
        elif not user.name or user.name.strip().lower() == 'user':
            user.name = name
        db.session.commit()

        resp = jsonify({
            'message': 'Access granted',
            'schedule': {
                'role': schedule.role,
                'mode': schedule.mode,
                'difficulty': schedule.difficulty,
                'scheduledAt': schedule.to_dict()['scheduledAt'],
                'notes': schedule.notes or '',
            },
            'user': user.to_public_dict(),
        })
        return set_auth_cookie(resp, user)

    app.register_blueprint(bp)

    @app.route('/uploads/profile-images/<path:filename>')
    def profile_image(filename):
        return send_from_directory(_profile_image_dir(), filename)
