"""
Notification Service for the rewards engine.

Reward emails are queued, not sent inline:
- queue_reward_email() renders the template and inserts an email_queue row
- dispatch_pending() drains the queue through SendGrid (run from
  `flask rewards send-emails` on a schedule)

Queueing is best-effort from the caller's point of view. The points award
commits first; LoyaltyService wraps the queue call and only logs failures.

Configuration:
- SENDGRID_API_KEY: SendGrid API key
- SENDGRID_FROM_EMAIL / SENDGRID_FROM_NAME: sender
- REWARDS_APP_URL: storefront base URL for the "View My Rewards" link
"""
from typing import Optional, Dict, Any
from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from ..extensions import db
from ..models.email_queue import EmailQueue
from ..utils.clock import utcnow

REWARD_EMAIL_TYPE = 'reward_notification'


class NotificationService:
    """
    Renders and queues reward emails, and sends queued email via SendGrid.
    """

    DEFAULT_TEMPLATES = {
        'points_earned': {
            'subject': 'You earned {points_earned} reward points!',
        },
        'tier_upgrade': {
            'subject': "Congratulations! You've reached {new_tier} status!",
        },
        'reward_body': {
            'text': '''Hi {customer_name},

Thank you for your order #{order_number}! Here's your rewards summary:
{upgrade_text}
Points Earned: +{points_earned} ({multiplier}x multiplier applied)
Your Tier: {new_tier}
Total Points: {new_balance}
{next_tier_text}
View your rewards: {rewards_url}

Keep shopping to earn more points and unlock exclusive rewards!
''',
            'html': '''
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2>Rewards Update</h2>
    <p>Hi {customer_name},</p>
    <p>Thank you for your order <strong>#{order_number}</strong>! Here's your rewards summary:</p>
    {upgrade_html}
    <div style="background: #ecfdf5; padding: 20px; border-radius: 8px; margin: 20px 0; text-align: center;">
        <p style="margin: 0; color: #065f46;">Points Earned</p>
        <p style="margin: 0; color: #047857; font-size: 36px; font-weight: bold;">+{points_earned}</p>
        <p style="margin: 0; color: #059669;">({multiplier}x multiplier applied)</p>
    </div>
    <div style="background: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <p><strong>Your Tier:</strong> {new_tier}</p>
        <p><strong>Total Points:</strong> {new_balance}</p>
    </div>
    {next_tier_html}
    <p style="text-align: center;"><a href="{rewards_url}">View My Rewards</a></p>
    <p>Keep shopping to earn more points and unlock exclusive rewards!</p>
</div>
'''
        },
        'tier_upgrade_section': {
            'text': '''
TIER UPGRADE! You've been promoted from {old_tier} to {new_tier}.
You now earn {new_multiplier}x points on every purchase!
''',
            'html': '''
    <div style="background: #fef3c7; padding: 20px; border-radius: 8px; margin: 20px 0; text-align: center;">
        <h3 style="margin: 0; color: #92400e;">TIER UPGRADE!</h3>
        <p>You've been promoted from <strong>{old_tier}</strong> to <strong>{new_tier}</strong>!</p>
        <p>You now earn <strong>{new_multiplier}x points</strong> on every purchase!</p>
    </div>
'''
        },
        'next_tier_section': {
            'text': '''
Next Goal: {next_tier} Status
You're only {points_to_next_tier} points away from {next_tier} ({progress_percent}% of the way).
{next_tier} benefits: {next_tier_benefits}
''',
            'html': '''
    <div style="background: #f0f9ff; padding: 20px; border-radius: 8px; margin-top: 20px;">
        <h3 style="margin: 0 0 10px 0; color: #0369a1;">Next Goal: {next_tier} Status</h3>
        <p>You're only <strong>{points_to_next_tier} points</strong> away from {next_tier}!</p>
        <div style="background: #e2e8f0; border-radius: 10px; height: 10px; overflow: hidden;">
            <div style="background: #10b981; height: 100%; width: {progress_percent}%;"></div>
        </div>
        <p style="color: #64748b; font-size: 13px;">{next_tier} benefits: {next_tier_benefits}</p>
    </div>
'''
        },
    }

    def _settings(self) -> Dict[str, Any]:
        config = current_app.config
        return {
            'api_key': config.get('SENDGRID_API_KEY'),
            'from_email': config.get('SENDGRID_FROM_EMAIL', 'rewards@9rx.com'),
            'from_name': config.get('SENDGRID_FROM_NAME', '9RX Rewards'),
            'app_url': (config.get('REWARDS_APP_URL') or '').rstrip('/'),
            'max_attempts': config.get('EMAIL_MAX_ATTEMPTS', 3),
        }

    def _get_client(self) -> Optional[SendGridAPIClient]:
        """Get SendGrid client if an API key is configured."""
        api_key = self._settings()['api_key']
        if not api_key:
            current_app.logger.warning("SENDGRID_API_KEY not configured")
            return None
        return SendGridAPIClient(api_key=api_key)

    # ==================== Rendering ====================

    def render_reward_email(self, variables: Dict[str, Any]) -> Dict[str, str]:
        """
        Render subject, text and html for a points-earned email.

        variables: customer_name, order_number, points_earned, multiplier,
        new_balance, old_tier, new_tier, new_multiplier, tier_upgrade,
        next_tier (or None), points_to_next_tier, progress_percent,
        next_tier_benefits.
        """
        templates = self.DEFAULT_TEMPLATES
        values = dict(variables)
        values.setdefault('rewards_url', f"{self._settings()['app_url']}/pharmacy/rewards")

        for key in ('points_earned', 'new_balance', 'points_to_next_tier'):
            if isinstance(values.get(key), int):
                values[key] = f"{values[key]:,}"

        if values.get('tier_upgrade'):
            subject = templates['tier_upgrade']['subject'].format(**values)
            values['upgrade_text'] = templates['tier_upgrade_section']['text'].format(**values)
            values['upgrade_html'] = templates['tier_upgrade_section']['html'].format(**values)
        else:
            subject = templates['points_earned']['subject'].format(**values)
            values['upgrade_text'] = ''
            values['upgrade_html'] = ''

        if values.get('next_tier'):
            values['next_tier_text'] = templates['next_tier_section']['text'].format(**values)
            values['next_tier_html'] = templates['next_tier_section']['html'].format(**values)
        else:
            values['next_tier_text'] = ''
            values['next_tier_html'] = ''

        return {
            'subject': subject,
            'text': templates['reward_body']['text'].format(**values),
            'html': templates['reward_body']['html'].format(**values),
        }

    # ==================== Queueing ====================

    def enqueue(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str = None,
        to_name: str = None,
        email_type: str = 'general'
    ) -> EmailQueue:
        """Insert a pending email and commit it."""
        entry = EmailQueue(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_content=html_content,
            text_content=text_content,
            email_type=email_type,
            status='pending',
        )
        db.session.add(entry)
        db.session.commit()
        current_app.logger.info(f"Email queued for {to_email}: {subject}")
        return entry

    def queue_reward_email(self, account, variables: Dict[str, Any]) -> EmailQueue:
        """Render and queue the points-earned email for an account."""
        variables = dict(variables, customer_name=account.display_name)
        rendered = self.render_reward_email(variables)
        return self.enqueue(
            to_email=account.email,
            to_name=account.display_name,
            subject=rendered['subject'],
            html_content=rendered['html'],
            text_content=rendered['text'],
            email_type=REWARD_EMAIL_TYPE,
        )

    # ==================== Sending ====================

    def _send_email(self, client: SendGridAPIClient, entry: EmailQueue, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Send one queued email via SendGrid."""
        try:
            message = Mail(
                from_email=Email(settings['from_email'], settings['from_name']),
                to_emails=To(entry.to_email, entry.to_name),
                subject=entry.subject,
                plain_text_content=Content("text/plain", entry.text_content or ''),
                html_content=Content("text/html", entry.html_content)
            )

            response = client.send(message)

            if response.status_code in [200, 202]:
                current_app.logger.info(f"Email sent to {entry.to_email}: {entry.subject}")
                return {'success': True, 'status_code': response.status_code}

            current_app.logger.error(f"SendGrid error: {response.status_code}")
            return {'success': False, 'error': f"Status code: {response.status_code}"}

        except Exception as e:
            current_app.logger.error(f"Failed to send email {entry.id}: {str(e)}")
            return {'success': False, 'error': str(e)}

    def dispatch_pending(self, limit: int = 50) -> Dict[str, Any]:
        """
        Send up to `limit` pending emails, oldest first.

        Rows that keep failing are marked 'failed' after EMAIL_MAX_ATTEMPTS.

        Returns:
            Dict with sent/failed/retrying counts
        """
        client = self._get_client()
        if not client:
            return {'success': False, 'error': 'SendGrid not configured', 'sent': 0, 'failed': 0, 'retrying': 0}

        settings = self._settings()
        pending = (
            EmailQueue.query
            .filter_by(status='pending')
            .order_by(EmailQueue.created_at.asc(), EmailQueue.id.asc())
            .limit(limit)
            .all()
        )

        sent = failed = retrying = 0
        for entry in pending:
            result = self._send_email(client, entry, settings)
            entry.attempts = (entry.attempts or 0) + 1

            if result['success']:
                entry.status = 'sent'
                entry.sent_at = utcnow()
                entry.last_error = None
                sent += 1
            else:
                entry.last_error = (result.get('error') or '')[:500]
                if entry.attempts >= settings['max_attempts']:
                    entry.status = 'failed'
                    failed += 1
                else:
                    retrying += 1

            db.session.commit()

        return {'success': True, 'sent': sent, 'failed': failed, 'retrying': retrying}


# Singleton instance
notification_service = NotificationService()
