"""Fixed resident-facing texts in both supported languages.

Tone: friendly building administration, short WhatsApp-length messages.
"""

from blok_platform.domain.enums import Language, Recipient, ResidentType

TEMPLATES = {
    "unknown_resident": {
        Language.ES: (
            "Hola! No reconocemos tu número en nuestro sistema. "
            "Por favor contacta a la administración de {building_name}."
        ),
        Language.EN: (
            "Hello! We don't recognize your number in our system. "
            "Please contact the administration of {building_name}."
        ),
    },
    "forward_from_renter": {
        Language.ES: "📨 *Mensaje de inquilino - Unidad {unit}*\n\n{body}\n\n_Este mensaje fue enviado por {sender}_",
        Language.EN: "📨 *Message from renter - Unit {unit}*\n\n{body}\n\n_This message was sent by {sender}_",
    },
    "forward_from_owner": {
        Language.ES: "📨 *Mensaje del propietario - Unidad {unit}*\n\n{body}\n\n_Este mensaje fue enviado por {sender}_",
        Language.EN: "📨 *Message from owner - Unit {unit}*\n\n{body}\n\n_This message was sent by {sender}_",
    },
    "forward_important": {
        Language.ES: "📨 *Mensaje importante - Unidad {unit}*\n\n{body}\n\n_Mensaje enviado por {sender}_",
        Language.EN: "📨 *Important message - Unit {unit}*\n\n{body}\n\n_Message sent by {sender}_",
    },
    "review_title": {
        Language.ES: "Mensaje requiere revisión ({priority})",
        Language.EN: "Message requires review ({priority})",
    },
    "new_message_title": {
        Language.ES: "Nuevo Mensaje ({channel})",
        Language.EN: "New Message ({channel})",
    },
}


def get_template(key: str, language: Language | str = Language.ES, **kwargs) -> str:
    """Return the ``key`` template in ``language`` (Spanish if unknown), formatted."""
    variants = TEMPLATES[key]
    try:
        lang = Language(language)
    except ValueError:
        lang = Language.ES
    template = variants.get(lang, variants[Language.ES])
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError):
        return template


def forward_template_key(sender_type: ResidentType, recipient: Recipient) -> str:
    """Pick the forward header for a message going from ``sender_type`` to ``recipient``."""
    if sender_type == ResidentType.RENTER and recipient == Recipient.OWNER:
        return "forward_from_renter"
    if sender_type == ResidentType.OWNER and recipient == Recipient.RENTER:
        return "forward_from_owner"
    return "forward_important"
