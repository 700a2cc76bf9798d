import requests
from typing import Dict

from app.logging.utils import get_app_logger
from app.config.settings import AuthConfigs

logger = get_app_logger(__name__)


class LogOnlySMSAction:
    """Demo / unconfigured provider: the message is only logged."""

    name = "log"

    def send_sms(self, phone_number: str, message: str) -> Dict:
        logger.info(f"SMS not sent (log-only provider) | to={phone_number}")
        return {'success': True, 'message': 'SMS logged, not sent'}


class AfricasTalkingSMSAction:
    """
    Africa's Talking bulk SMS integration.
    Simple wrapper around the /messaging endpoint.
    """

    name = "africastalking"

    def __init__(self, configs: AuthConfigs):
        self.username = configs.AFRICASTALKING_USERNAME
        self.api_key = configs.AFRICASTALKING_API_KEY
        self.sender_id = configs.AFRICASTALKING_SENDER_ID
        self.url = f"{configs.AFRICASTALKING_BASE_URL.rstrip('/')}/messaging"
        self.timeout = configs.SMS_TIMEOUT

        if not self.username or not self.api_key:
            logger.error("Africa's Talking credentials not configured")
            raise ValueError("Africa's Talking credentials not configured")

    def send_sms(self, phone_number: str, message: str) -> Dict:
        data = {'username': self.username, 'to': phone_number, 'message': message}
        if self.sender_id:
            data['from'] = self.sender_id
        headers = {
            'apiKey': self.api_key,
            'Accept': 'application/json',
            'Content-Type': 'application/x-www-form-urlencoded',
        }
        try:
            response = requests.post(self.url, headers=headers, data=data, timeout=self.timeout)
            if response.status_code in (200, 201):
                recipients = response.json().get('SMSMessageData', {}).get('Recipients', [])
                if recipients and recipients[0].get('status') == 'Success':
                    logger.info(f"OTP SMS sent successfully via Africa's Talking to {phone_number}")
                    return {'success': True, 'message': 'SMS sent successfully'}
                status = recipients[0].get('status') if recipients else 'NoRecipients'
                logger.warning(f"Africa's Talking rejected SMS | to={phone_number} status={status}")
                return {'success': False, 'message': f'SMS rejected: {status}'}
            logger.warning(f"Failed to send SMS. Status: {response.status_code}, Response: {response.text}")
            return {'success': False, 'message': 'Failed to send SMS'}
        except requests.RequestException as e:
            logger.error(f"Request failed while sending SMS to {phone_number}: {str(e)}")
            return {'success': False, 'message': 'Failed to connect to SMS service'}
        except ValueError as e:
            logger.error(f"Invalid JSON from Africa's Talking for {phone_number}: {str(e)}")
            return {'success': False, 'message': 'Invalid response from SMS service'}


class TwilioSMSAction:
    """Twilio Messages API integration."""

    name = "twilio"

    def __init__(self, configs: AuthConfigs):
        self.account_sid = configs.TWILIO_ACCOUNT_SID
        self.auth_token = configs.TWILIO_AUTH_TOKEN
        self.from_number = configs.TWILIO_PHONE_NUMBER
        self.url = f"{configs.TWILIO_BASE_URL.rstrip('/')}/Accounts/{self.account_sid}/Messages.json"
        self.timeout = configs.SMS_TIMEOUT

        if not self.account_sid or not self.auth_token or not self.from_number:
            logger.error("Twilio credentials not configured")
            raise ValueError("Twilio credentials not configured")

    def send_sms(self, phone_number: str, message: str) -> Dict:
        data = {'To': phone_number, 'From': self.from_number, 'Body': message}
        try:
            response = requests.post(
                self.url,
                data=data,
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
            if response.status_code in (200, 201):
                logger.info(f"OTP SMS sent successfully via Twilio to {phone_number}")
                return {'success': True, 'message': 'SMS sent successfully'}
            logger.warning(f"Twilio send failed. Status: {response.status_code}, Response: {response.text}")
            return {'success': False, 'message': 'Failed to send SMS'}
        except requests.RequestException as e:
            logger.error(f"Request failed while sending SMS to {phone_number}: {str(e)}")
            return {'success': False, 'message': 'Failed to connect to SMS service'}


def build_sms_gateway(configs: AuthConfigs):
    """Pick the SMS provider; demo mode never sends real messages."""
    if configs.DEMO_MODE:
        logger.warning("Demo mode: SMS not actually sent")
        return LogOnlySMSAction()
    provider = configs.SMS_PROVIDER
    if provider == "africastalking":
        return AfricasTalkingSMSAction(configs)
    if provider == "twilio":
        return TwilioSMSAction(configs)
    if provider != "log":
        logger.error(f"Unknown SMS_PROVIDER={provider}, falling back to log-only")
    else:
        logger.warning("No SMS provider configured")
    return LogOnlySMSAction()
