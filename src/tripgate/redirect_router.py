"""Post-login destination, decided from the final account state."""
from .classifier import LoginPath
from .models import Account

CHAT = '/chat'
CHAT_TRIAL = '/chat-test'
ONBOARDING = '/onboarding'
HOME = '/'
ADMIN_DASHBOARD = '/admin/dashboard'


def partner_dashboard(partner_id: str) -> str:
    return f"/partner/{partner_id}/dashboard"


def next_url(path: LoginPath, account: Account) -> str:
    if path is LoginPath.TRIAL:
        return CHAT_TRIAL
    if path is LoginPath.PARTNER:
        return partner_dashboard(account.mall_user_id or account.phone)
    if path is LoginPath.COMMUNITY:
        return HOME
    if path is LoginPath.ADMIN:
        return ADMIN_DASHBOARD
    if path is LoginPath.LEGACY_NUMBERED:
        return CHAT
    # Reactivation paths and standard customers
    return CHAT if account.onboarded else ONBOARDING
