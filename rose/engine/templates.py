"""Button labels and canned French copy used by Rose."""

from __future__ import annotations

from urllib.parse import quote

from rose.engine.pricing import format_fcfa

PERSONA_NAME = "Rose"

CHOICE_BUY_NOW = "⚡ Commander rapidement"
CHOICE_ASK = "❓ Poser une question"
CHOICE_RULES = "📖 Voir les règles du jeu"
CHOICE_REVIEWS = "⭐ Voir les avis clients"
CHOICE_START_OVER = "🔄 Recommencer"
CHOICE_RETRY = "🔄 Réessayer"
CHOICE_SUPPORT = "📞 Contacter le support"
CHOICE_ADVISOR = "💬 Parler à un conseiller"
CHOICE_OTHER_QUESTION = "Autre question"
CHOICE_BUY_IT = "Je veux l'acheter maintenant"
CHOICE_LEARN_MORE = "En savoir plus sur le jeu"

QUANTITY_CHOICES = ["1 exemplaire", "2 exemplaires", "3 exemplaires", "🔢 Autre quantité"]
CHOICE_CUSTOM_QUANTITY = QUANTITY_CHOICES[-1]

CHOICE_KEEP_ADDRESS = "Oui, même adresse"
CHOICE_CHANGE_ADDRESS = "Changer d'adresse"

CHOICE_WAVE = "📱 Wave"
CHOICE_CARD = "💳 Carte bancaire"
CHOICE_CASH = "🚚 Paiement à la livraison"
PAYMENT_CHOICES = [CHOICE_WAVE, CHOICE_CARD, CHOICE_CASH]

CHOICE_NOTIFY = "📧 Me notifier quand disponible"
CHOICE_OTHER_GAMES = "🛍️ Voir autres jeux"
OUT_OF_STOCK_CHOICES = [CHOICE_NOTIFY, CHOICE_OTHER_GAMES, CHOICE_SUPPORT]

CHOICE_TRACK_ORDER = "📦 Suivre ma commande"
CHOICE_FINISH = "✅ C'est tout, merci"
ADD_PRODUCT_PREFIX = "➕ Ajouter "

WELCOME_CHOICES = [CHOICE_BUY_NOW, CHOICE_ASK, CHOICE_RULES, CHOICE_REVIEWS]
QUESTION_FOLLOW_UP_CHOICES = [CHOICE_BUY_IT, CHOICE_OTHER_QUESTION, CHOICE_LEARN_MORE]
FALLBACK_CHOICES = ["Comment ça marche ?", "Je veux l'acheter", CHOICE_REVIEWS]
ERROR_CHOICES = [CHOICE_RETRY, CHOICE_SUPPORT, CHOICE_START_OVER]


def whatsapp_url(number: str, text: str = "") -> str:
    base = f"https://wa.me/{number}"
    return f"{base}?text={quote(text)}" if text else base


def welcome(product_name: str) -> str:
    return (
        f"Bonjour ! Je suis {PERSONA_NAME}, votre assistante d'achat 👋\n\n"
        f"Vous regardez **{product_name}**. Je peux répondre à vos questions "
        "ou vous aider à commander en moins d'une minute. Que souhaitez-vous faire ?"
    )


def ask_quantity(product_name: str, unit_price: int) -> str:
    return (
        f"Excellent choix ! 🎉 **{product_name}** est à {format_fcfa(unit_price)}.\n\n"
        "Combien d'exemplaires souhaitez-vous ? (-10% dès 2, -15% pour 3, -20% à partir de 4)"
    )


def ask_custom_quantity(max_quantity: int) -> str:
    return f"Indiquez le nombre d'exemplaires souhaité (entre 1 et {max_quantity}) :"


def invalid_quantity(max_quantity: int) -> str:
    return f"Je n'ai pas compris la quantité 🤔 Merci d'indiquer un nombre entre 1 et {max_quantity}."


def ask_name(quantity: int, subtotal: int, discount: int) -> str:
    lines = [f"Parfait, {quantity} exemplaire{'s' if quantity > 1 else ''} ✅"]
    if discount:
        lines.append(f"Vous économisez {format_fcfa(discount)} sur {format_fcfa(subtotal)} 🎁")
    lines.append("\nPour la livraison, quel est votre **nom complet** ? (prénom et nom)")
    return "\n".join(lines)


INVALID_NAME = "Merci d'indiquer votre prénom et votre nom (par exemple : Aminata Diallo) 🙏"


def ask_phone(first_name: str) -> str:
    return f"Enchantée {first_name} ! 😊 Quel est votre **numéro de téléphone** ? (ex : 77 123 45 67)"


INVALID_PHONE = (
    "Ce numéro ne semble pas valide 🤔 Merci d'indiquer un numéro sénégalais (77 123 45 67) "
    "ou votre numéro avec l'indicatif pays (+225..., +226..., +223..., +224..., +33...)."
)


def confirm_known_address(first_name: str, address: str, city: str) -> str:
    return (
        f"Ravie de vous revoir {first_name} ! 👋\n\n"
        f"Nous avons cette adresse : **{address}, {city}**.\n"
        "Souhaitez-vous être livré(e) à la même adresse ?"
    )


ASK_ADDRESS = "Quelle est votre **adresse de livraison** ? Indiquez le quartier puis la ville (ex : Mermoz, Dakar)."
ASK_NEW_ADDRESS = "Pas de souci ! Indiquez votre nouvelle adresse : quartier puis ville (ex : Mermoz, Dakar)."
ADDRESS_UNCLEAR = (
    "Je n'ai pas bien compris 🤔 Voulez-vous garder la même adresse ou en indiquer une nouvelle ?"
)
INVALID_ADDRESS = "Cette adresse semble incomplète. Merci d'indiquer le quartier puis la ville (ex : Mermoz, Dakar)."


def ask_payment(address: str, city: str, delivery: int, total: int) -> str:
    delivery_text = "gratuite 🎁" if delivery == 0 else format_fcfa(delivery)
    return (
        f"Livraison à **{address}, {city}** ({delivery_text}).\n\n"
        f"Total à payer : **{format_fcfa(total)}**\n\n"
        "Comment souhaitez-vous payer ?"
    )


INVALID_PAYMENT = "Merci de choisir un mode de paiement parmi les options ci-dessous 👇"


def card_payment(total: int) -> str:
    return (
        f"Parfait ! Le formulaire de paiement sécurisé s'affiche pour régler **{format_fcfa(total)}** 💳\n\n"
        "Votre commande sera confirmée dès la validation du paiement."
    )


AWAITING_CARD = "Le paiement par carte est en attente de validation. Vous pouvez compléter le formulaire sécurisé ci-dessus 💳"


def card_failed() -> str:
    return "Le paiement n'a pas abouti 😕 Souhaitez-vous réessayer ou choisir un autre mode de paiement ?"


def wave_payment(order_ref: str, phone: str, address: str, city: str, total: int, url: str) -> str:
    return (
        f"Merci ! Votre commande **{order_ref}** est enregistrée 🎉\n\n"
        f"Réglez **{format_fcfa(total)}** via Wave avec ce lien : {url}\n\n"
        f"📱 Téléphone : {phone}\n📍 Livraison : {address}, {city}\n\n"
        "Nous vous contacterons dès réception du paiement."
    )


def cash_payment(order_ref: str, phone: str, address: str, city: str, total: int) -> str:
    return (
        f"Merci ! Votre commande **{order_ref}** est confirmée 🎉\n\n"
        f"Vous réglerez **{format_fcfa(total)}** en espèces à la livraison.\n"
        f"📱 Téléphone : {phone}\n📍 Livraison : {address}, {city}\n\n"
        "Notre livreur vous appellera avant de passer."
    )


def card_confirmed(order_ref: str, total: int) -> str:
    return f"Paiement reçu ✅ Votre commande **{order_ref}** ({format_fcfa(total)}) est confirmée. Merci pour votre confiance ! 🎉"


def out_of_stock(product_name: str) -> str:
    return (
        f"Oh, **{product_name}** est victime de son succès et n'est plus en stock pour le moment 😔\n\n"
        "Je peux vous prévenir dès son retour ou vous montrer nos autres jeux."
    )


PRODUCT_UNAVAILABLE = "Ce jeu n'est plus disponible à la vente pour le moment 😔 Puis-je vous montrer nos autres jeux ?"

ERROR_MESSAGE = (
    "😔 Erreur temporaire, je n'ai pas pu traiter votre message.\n\n"
    "Vous pouvez réessayer ou contacter notre équipe sur WhatsApp."
)

ASK_QUESTION = "Je vous écoute ! Posez-moi votre question sur le jeu 😊"
NOTIFY_CONFIRMED = "C'est noté ! Contactez-nous sur WhatsApp pour être prévenu(e) dès le retour en stock 📧"
SUPPORT_REDIRECT = "Notre équipe est disponible sur WhatsApp pour vous aider 💬"
FAREWELL = "Merci beaucoup et à très bientôt ! 💝"
NO_RECOMMENDATIONS = "Je n'ai pas d'autre jeu disponible à vous proposer pour le moment. Puis-je vous aider autrement ?"


def track_order(order_ref: str) -> str:
    return f"Pour suivre la commande **{order_ref}**, écrivez-nous sur WhatsApp : notre équipe vous répond rapidement 📦"


def restart(product_name: str) -> str:
    return f"On reprend depuis le début 😊 Que souhaitez-vous savoir sur **{product_name}** ?"
