"""
Submission Mailer Cloud Function

Forwards a finished audioguide to the CloudGuide team for CMS upload.

Sends two emails over SMTP:
- Admin notification with the full script attached
- Confirmation to the submitting user

Without EMAIL_USER/EMAIL_PASS the function refuses with a configuration
error, unless EMAIL_MOCK_MODE is set, in which case nothing is sent and the
response says so.
"""

import functions_framework
import os
import re
import smtplib
import sys
import traceback
from datetime import datetime
from email.message import EmailMessage

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.config import load_config
from shared.http_utils import (
    InvalidRequest,
    error_response,
    json_response,
    method_not_allowed,
    preflight_response,
    read_json_body,
    require_fields,
)
from shared.models import ConfigurationError, ErrorKind

# Configuration
CONFIG = load_config()

SMTP_TIMEOUT = 30
SEPARATOR = '=' * 37

CONFIRMATION_TEMPLATE = """Dear CloudGuide User,

Your audioguide upload request has been received successfully!

Details:
- Institution: {institution}
- Exhibition: {exhibition}
- Guide Name: {guide_name}
- Language: {language}
- Script: Received
- Audio Files: {audio_count} files received

Your content will be uploaded to your CloudGuide CMS account within 24 hours.

Once uploaded:
1. Log in to your CloudGuide CMS account
2. Navigate to the PUBLISH section
3. Add images to enhance the visitor experience
4. Review and publish your audioguide

If you have any questions, please contact our support team.

Best regards,
CloudGuide Team
www.cloudguide.me
"""


def format_date(value, date_only=False) -> str:
    """Render an ISO timestamp for humans; anything unparseable is shown as given."""
    if not value:
        return 'Not provided'
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return str(value)
    return parsed.strftime('%Y-%m-%d') if date_only else parsed.strftime('%Y-%m-%d %H:%M:%S %Z').strip()


def attachment_filename(body: dict) -> str:
    name = f"{body.get('institutionName')}_{body.get('exhibitionName')}_{body.get('guideName')}_script.txt"
    return re.sub(r'[^a-zA-Z0-9]', '_', name)


def audio_lines(audio_urls: list) -> str:
    if not audio_urls:
        return 'No audio files generated - Script only submission'
    lines = []
    for index, audio in enumerate(audio_urls, start=1):
        if not isinstance(audio, dict):
            audio = {'url': str(audio)}
        stop = audio.get('stopNumber') or index
        lines.append(f"Stop {stop}: {audio.get('name') or 'audio'}\n    Download: {audio.get('url')}")
    return '\n'.join(lines)


def admin_email_text(body: dict) -> str:
    metadata = body.get('guideMetadata') or {}
    audio_urls = body.get('audioUrls') or []

    return f"""NEW CLOUDGUIDE CMS UPLOAD REQUEST
{SEPARATOR}

ACCOUNT INFORMATION:
- CMS Account Email: {body.get('cmsEmail')}
- Institution: {body.get('institutionName')}
- Exhibition: {body.get('exhibitionName')}
- Guide Name: {body.get('guideName')}
- Language: {body.get('language')}
- Contact Phone: {body.get('contactPhone') or 'Not provided'}
- Submitted: {format_date(body.get('submittedAt'))}

GUIDE METADATA:
- Original Title: {metadata.get('originalTitle')}
- Location: {metadata.get('location')}
- Number of Stops: {metadata.get('stops')}
- Tour Type: {metadata.get('tourType') or 'Standard'}
- Word Count: {metadata.get('wordCount')}
- Generated Date: {format_date(metadata.get('generatedDate'), date_only=True)}

AUDIO FILES ({len(audio_urls)} files):
{SEPARATOR}
{audio_lines(audio_urls)}

ADDITIONAL NOTES:
{body.get('additionalNotes') or 'None'}

{SEPARATOR}
GUIDE CONTENT (SCRIPT):
{SEPARATOR}

{body.get('guideContent')}

{SEPARATOR}
END OF SUBMISSION
"""


def build_admin_message(body: dict, sender: str, recipient: str) -> EmailMessage:
    audio_count = len(body.get('audioUrls') or [])
    message = EmailMessage()
    message['From'] = sender
    message['To'] = recipient
    message['Subject'] = (f"CloudGuide Upload: {body.get('institutionName')} - {body.get('exhibitionName')} - "
                          f"{body.get('guideName')} [{audio_count} audio files]")
    message.set_content(admin_email_text(body))
    message.add_attachment(
        str(body.get('guideContent')).encode('utf-8'),
        maintype='text',
        subtype='plain',
        filename=attachment_filename(body),
    )
    return message


def build_confirmation_message(body: dict, sender: str) -> EmailMessage:
    message = EmailMessage()
    message['From'] = sender
    message['To'] = body['cmsEmail']
    message['Subject'] = 'CloudGuide Upload Confirmation'
    message.set_content(CONFIRMATION_TEMPLATE.format(
        institution=body.get('institutionName'),
        exhibition=body.get('exhibitionName'),
        guide_name=body.get('guideName'),
        language=body.get('language'),
        audio_count=len(body.get('audioUrls') or []),
    ))
    return message


def send_messages(messages):
    with smtplib.SMTP_SSL(CONFIG.smtp_host, CONFIG.smtp_port, timeout=SMTP_TIMEOUT) as server:
        server.login(CONFIG.email_user, CONFIG.email_pass)
        for message in messages:
            server.send_message(message)
            print(f"Email sent to {message['To']}")


def validate_submission(body: dict):
    require_fields(body, 'cmsEmail', 'institutionName', 'exhibitionName', 'guideName', 'guideContent')
    if '@' not in str(body['cmsEmail']):
        raise InvalidRequest('cmsEmail must be an email address')
    audio_urls = body.get('audioUrls')
    if audio_urls is not None and not isinstance(audio_urls, list):
        raise InvalidRequest('audioUrls must be a list')
    metadata = body.get('guideMetadata')
    if metadata is not None and not isinstance(metadata, dict):
        raise InvalidRequest('guideMetadata must be an object')


@functions_framework.http
def submit_guide(request):
    """
    Main Cloud Function entry point.

    Expected JSON input:
    {
        "cmsEmail": "curator@museum.org",
        "institutionName": "Museo Nazionale",
        "exhibitionName": "Ancient Rome",
        "guideName": "Highlights",
        "language": "English",
        "guideContent": "STOP 1: ...",
        "guideMetadata": {"stops": 5, "wordCount": 1500},
        "audioUrls": [{"stopNumber": 1, "name": "stop_1.mp3", "url": "https://..."}]
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response('POST')

    if request.method != 'POST':
        return method_not_allowed(request.method)

    try:
        body = read_json_body(request)
        validate_submission(body)

        if not CONFIG.email_configured:
            if not CONFIG.email_mock_mode:
                raise ConfigurationError('EMAIL_USER and EMAIL_PASS are not configured')
            print('Email not configured - mock mode active')
            return json_response({
                'success': True,
                'mock': True,
                'message': 'Upload request accepted (mock mode, no email sent)',
            })

        admin = build_admin_message(body, CONFIG.email_user, CONFIG.admin_email)
        confirmation = build_confirmation_message(body, CONFIG.email_user)
        send_messages([admin, confirmation])

        return json_response({
            'success': True,
            'mock': False,
            'message': 'Upload request submitted successfully',
        })

    except InvalidRequest as e:
        return error_response(ErrorKind.INVALID_REQUEST, str(e))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return error_response(ErrorKind.CONFIGURATION_ERROR, str(e))
    except (smtplib.SMTPException, OSError) as e:
        print(f"Email error: {e}")
        return error_response(ErrorKind.UPSTREAM_ERROR, f'Email delivery failed: {e}', status=502)
    except Exception as e:
        print(f"Submission error: {str(e)}\n{traceback.format_exc()}")
        return error_response('InternalError', 'Internal server error', status=500)
