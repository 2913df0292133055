import os
import re
import pint
import smtplib
from datetime import date, datetime, timedelta
from email.message import EmailMessage
from flask import url_for, current_app
from . import s

# --- Name Utilities ---
_WHITESPACE = re.compile(r'\s+')

def normalize_name(name):
    """Canonical lookup key for ingredient, shopping and inventory names.

    "Red Onion", "red onion" and " red  onion " all map to "red onion".
    """
    return _WHITESPACE.sub(' ', (name or '').strip().lower())

def escape_like(term):
    """Escapes SQL LIKE wildcards so user search text matches literally."""
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')

# --- Date Utilities ---
def start_of_week(day=None):
    """Monday of the week containing ``day`` (today by default)."""
    day = day or date.today()
    return day - timedelta(days=day.weekday())

def parse_iso_date(value):
    """Parses YYYY-MM-DD (a trailing time part is ignored); returns None for bad input."""
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value[:10], '%Y-%m-%d').date()
    except ValueError:
        return None

# --- Data Conversion Utilities ---
def convert_quantity_to_float(quantity_str):
    """Converts a string quantity (including fractions) to a float."""
    if not isinstance(quantity_str, str):
        try:
            return float(quantity_str)
        except (ValueError, TypeError):
            return 0.0

    quantity_str = quantity_str.strip()
    try:
        unicodes = {'½': 0.5, '⅓': 0.33, '⅔': 0.67, '¼': 0.25, '¾': 0.75, '⅕': 0.2}
        if quantity_str in unicodes:
            return unicodes[quantity_str]

        if ' ' in quantity_str and '/' in quantity_str:
            parts = quantity_str.split(' ')
            whole_num = float(parts[0])
            frac_parts = parts[1].split('/')
            return whole_num + (float(frac_parts[0]) / float(frac_parts[1]))
        elif '/' in quantity_str:
            frac_parts = quantity_str.split('/')
            return float(frac_parts[0]) / float(frac_parts[1])
        else:
            return float(quantity_str)
    except (ValueError, ZeroDivisionError, IndexError):
        return 0.0

def optional_quantity(value):
    """Like convert_quantity_to_float, but keeps "no quantity" as None."""
    if value is None or value == '':
        return None
    return convert_quantity_to_float(value)

# --- Unit Conversion (Pint) Setup ---
ureg = pint.UnitRegistry()
ureg.load_definitions(os.path.join(os.path.dirname(__file__), 'unit_definitions.txt'))

cooking_conversions = {
    'all_purpose_flour': {'cup': '120 * gram'}, 'flour': {'cup': '120 * gram'},
    'bread_flour': {'cup': '127 * gram'}, 'granulated_sugar': {'cup': '200 * gram'},
    'sugar': {'cup': '200 * gram'}, 'brown_sugar': {'cup': '213 * gram'},
    'powdered_sugar': {'cup': '113 * gram'}, 'cocoa_powder': {'cup': '85 * gram'},
    'salt': {'cup': '273 * gram'}, 'butter': {'cup': '227 * gram'},
    'oil': {'cup': '213 * gram'}, 'olive_oil': {'cup': '216 * gram'},
    'water': {'cup': '236 * gram'}, 'milk': {'cup': '241 * gram'},
    'heavy_cream': {'cup': '232 * gram'}, 'honey': {'cup': '340 * gram'},
    'oats': {'cup': '85 * gram'}, 'rice': {'cup': '184 * gram'},
    'parmesan_cheese': {'cup': '100 * gram'},
}

densities = {
    substance: ureg.parse_expression(conversions['cup']) / (1 * ureg.cup)
    for substance, conversions in cooking_conversions.items()
}

def mass_to_volume(ureg, quantity, substance):
    return quantity / densities[substance]

def volume_to_mass(ureg, quantity, substance):
    return quantity * densities[substance]

cooking_context = pint.Context('cooking')
cooking_context.add_transformation('[mass]', '[volume]', mass_to_volume)
cooking_context.add_transformation('[volume]', '[mass]', volume_to_mass)
ureg.add_context(cooking_context)

def sanitize_unit(unit_str):
    """Sanitizes and maps common cooking units to Pint-compatible units."""
    if not unit_str: return "dimensionless"
    unit_str = unit_str.lower().strip().rstrip('.')
    if len(unit_str) > 2 and unit_str.endswith('s'):
        unit_str = unit_str[:-1]  # cups -> cup, items -> item

    unit_map = {
        'oz': 'ounce', 'ounce': 'ounce', 'fl oz': 'fluid_ounce',
        'lb': 'pound', 'lbs': 'pound', 'pound': 'pound',
        'cup': 'cup', 'c': 'cup',
        'tsp': 'teaspoon', 'teaspoon': 'teaspoon',
        'tbsp': 'tablespoon', 'tablespoon': 'tablespoon', 'tb': 'tablespoon',
        'g': 'gram', 'gram': 'gram', 'gr': 'gram',
        'kg': 'kilogram', 'kilogram': 'kilogram',
        'ml': 'milliliter', 'milliliter': 'milliliter', 'millilitre': 'milliliter',
        'l': 'liter', 'liter': 'liter', 'litre': 'liter',
        'stick': 'stick_of_butter',
        'pc': 'piece', 'pcs': 'piece', 'leave': 'leaf', 'leaves': 'leaf',
    }
    return unit_map.get(unit_str, unit_str)

def convert_quantity(quantity, from_unit, to_unit, substance=None):
    """Converts ``quantity`` from one unit to another.

    Identical units pass through untouched. Returns None when the units are
    unknown or measure different things.
    """
    if (from_unit or None) == (to_unit or None):
        return quantity
    substance_key = normalize_name(substance).replace(' ', '_')
    try:
        with ureg.context('cooking', substance=substance_key):
            source = quantity * ureg(sanitize_unit(from_unit))
            target = ureg(sanitize_unit(to_unit))
            if not source.is_compatible_with(target):
                return None
            return source.to(target.units).magnitude
    except Exception:
        # pint's parser raises assorted errors on free-text units such as "can (14 oz"
        return None

# --- Email Utilities ---
def send_email(to_address, subject, body):
    """Sends a plain-text email over SMTP. Returns False when mail is not configured or fails."""
    if not os.getenv('MAIL_SERVER'):
        current_app.logger.warning(f"MAIL_SERVER not configured; skipped email '{subject}' to {to_address}")
        return False

    msg = EmailMessage()
    msg['Subject'] = subject
    msg['From'] = os.getenv('MAIL_USERNAME')
    msg['To'] = to_address
    msg.set_content(body)

    try:
        with smtplib.SMTP(os.getenv('MAIL_SERVER'), int(os.getenv('MAIL_PORT', 587))) as server:
            if os.getenv('MAIL_USE_TLS', 'false').lower() == 'true':
                server.starttls()
            if os.getenv('MAIL_USERNAME'):
                server.login(os.getenv('MAIL_USERNAME'), os.getenv('MAIL_PASSWORD'))
            server.send_message(msg)
        return True
    except Exception as e:
        current_app.logger.error(f"Failed to send email '{subject}' to {to_address}: {e}")
        return False

def send_reset_email(user_email):
    """Generates a password reset token and sends the email."""
    token = s.dumps(user_email, salt='password-reset-salt')
    reset_url = url_for('auth.reset_password', token=token, _external=True)
    return send_email(
        user_email,
        'Password Reset Request for MealPrep',
        f"Hello,\n\nA password reset has been requested for your MealPrep account.\n"
        f"Use the link below to reset your password. This link is valid for 30 minutes.\n\n"
        f"{reset_url}\n\n"
        f"If you did not request this, please ignore this email.\n\n"
        f"Thanks,\nThe MealPrep Team"
    )

def send_invitation_email(invitation, invited_by_email):
    """Tells the invitee which household they were invited to and how to respond."""
    invite_url = url_for('household.invitation_details', invitation_id=invitation.id, _external=True)
    return send_email(
        invitation.email,
        f'You have been invited to join "{invitation.household.name}" on MealPrep',
        f"Hello,\n\n{invited_by_email} invited you to share meal plans, recipes and shopping lists "
        f"in their household \"{invitation.household.name}\".\n\n"
        f"Open the invitation: {invite_url}\n\n"
        f"The invitation expires on {invitation.expires_at.strftime('%Y-%m-%d')}.\n\n"
        f"Thanks,\nThe MealPrep Team"
    )
