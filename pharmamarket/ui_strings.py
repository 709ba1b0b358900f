from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "PharmaMarket",
    "offer": "Offre promotionnelle",
    "pack": "Pack groupe",
    "threshold": "Offre sur achats libres",
    "priority_item": "Produit a disponibilite prioritaire",
    "tender": "Appel d'offres",
    "tender_response": "Reponse a l'appel d'offres",
    "order": "Commande",
    "pharmacist": "Pharmacien",
    "wholesaler": "Grossiste",
    "free_units": "UG",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "tender": [
        {
            "key": "open",
            "label": "Ouvert",
            "description": "Appel d'offres ouvert aux reponses des grossistes.",
        },
        {
            "key": "expired",
            "label": "Expire",
            "description": "Date limite depassee, l'appel d'offres reste ouvert jusqu'a sa cloture.",
        },
        {
            "key": "closed",
            "label": "Cloture",
            "description": "Aucune nouvelle reponse n'est acceptee, l'historique reste consultable.",
        },
        {
            "key": "canceled",
            "label": "Annule",
            "description": "Appel d'offres annule par le pharmacien.",
        },
    ],
    "order": [
        {
            "key": "pending",
            "label": "En attente",
            "description": "Commande transmise au grossiste, en attente de confirmation.",
        },
        {
            "key": "accepted",
            "label": "Acceptee",
            "description": "Commande confirmee avec une date de livraison.",
        },
    ],
    "offer": [
        {
            "key": "scheduled",
            "label": "Programmee",
            "description": "Offre publiee dont la periode n'a pas encore commence.",
        },
        {
            "key": "active",
            "label": "Active",
            "description": "Offre disponible a la commande.",
        },
        {
            "key": "expired",
            "label": "Expiree",
            "description": "La date de fin de l'offre est depassee.",
        },
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "errors": {
        "unexpected_error": "Impossible de terminer l'operation.",
        "action_invalid": "Action invalide.",
        "validation_error": "Donnees invalides.",
        "permission_denied": "Vous n'avez pas la permission d'effectuer cette action.",
        "not_found": "Element introuvable.",
        "offer_not_found": "Offre introuvable.",
        "tender_not_found": "Appel d'offres introuvable.",
        "tender_response_not_found": "Reponse introuvable.",
        "offer_name_required": "Le nom de l'offre est requis.",
        "offer_type_invalid": "Type d'offre invalide.",
        "min_purchase_amount_required": "Le montant minimum d'achat doit etre superieur a 0.",
        "offer_products_required": "Vous devez ajouter au moins un produit a l'offre.",
        "offer_duplicate_product": "Vous avez ajoute le meme medicament plusieurs fois.",
        "offer_dates_invalid": "La date de fin doit etre apres la date de debut.",
        "amount_invalid": "Montant invalide.",
        "quantity_invalid": "Les quantites doivent etre superieures a 0.",
        "free_units_invalid": "Le pourcentage d'UG doit etre compris entre 0 et 100.",
        "quota_invalid": "Le nombre maximum de produits prioritaires doit etre au moins 1.",
        "offer_not_active": "Cette offre n'est pas disponible a la commande.",
        "quota_exceeded": "Vous avez depasse le nombre de produits prioritaires autorise.",
        "selection_required": "Veuillez choisir au moins un produit prioritaire.",
        "selection_duplicate": "Un produit prioritaire ne peut etre choisi qu'une fois.",
        "selection_unknown_product": "Ce produit n'est pas un produit prioritaire de l'offre.",
        "selection_conflict": "Une commande sans produit prioritaire ne peut pas contenir de selection.",
        "tender_title_required": "Le titre est requis.",
        "tender_deadline_invalid": "La date limite doit etre dans le futur.",
        "tender_wilaya_required": "La wilaya est requise.",
        "tender_items_required": "Vous devez ajouter au moins un produit.",
        "tender_duplicate_product": "Vous avez ajoute le meme medicament plusieurs fois.",
        "tender_not_open": "Cet appel d'offres n'est plus ouvert.",
        "tender_already_closed": "Cet appel d'offres a deja ete cloture. Actualisez la page.",
        "action_not_allowed_for_status": "Action non autorisee pour le statut actuel.",
        "empty_response": "Veuillez remplir au moins un produit avec un prix et une date de livraison.",
        "response_item_unknown": "Ce produit ne fait pas partie de l'appel d'offres.",
        "response_item_duplicate": "Un produit ne peut recevoir qu'une seule offre par reponse.",
        "delivery_date_in_past": "La date de livraison ne peut pas etre dans le passe.",
        "stale_response": "Votre reponse a ete modifiee entre-temps. Actualisez la page.",
        "message_required": "Le message ne peut pas etre vide.",
        "reconciliation_mismatch": "Le total de la commande ne correspond pas a ses lignes.",
        "persistence_failure": "Le stockage est temporairement indisponible.",
        "auth_required": "Authentification requise.",
    },
    "success": {
        "offer_created": "Offre creee avec succes.",
        "offer_updated": "Offre mise a jour.",
        "order_created": "Commande creee avec succes !",
        "tender_created": "Appel d'offres cree avec succes.",
        "tender_closed": "Appel d'offres cloture.",
        "tender_canceled": "Appel d'offres annule.",
        "tender_reopened": "Appel d'offres rouvert.",
        "tender_cloned": "Appel d'offres duplique.",
        "response_saved": "Reponse enregistree.",
        "message_sent": "Message envoye.",
    },
}


def _index_status_items() -> Dict[str, Dict[str, str]]:
    labels: Dict[str, Dict[str, str]] = {}
    for group, items in STATUS_GROUPS.items():
        labels[group] = {item["key"]: item["label"] for item in items}
    return labels


STATUS_LABELS = _index_status_items()


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    normalized = str(key or "").strip()
    return STATUS_LABELS.get(group, {}).get(normalized, normalized)


def get_message(category: str, key: str, default: str | None = None) -> str:
    messages = MESSAGES.get(category, {})
    if key in messages:
        return messages[key]
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("errors", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)
