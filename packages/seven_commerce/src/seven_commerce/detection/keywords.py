"""
Keyword lists used by message classification.

French first (the customer base is francophone West Africa), with the
English equivalents customers also use.
"""

PURCHASE_KEYWORDS = [
    "je veux", "je voudrais", "je souhaite",
    "je veux commander", "je voudrais commander", "je commande",
    "j'achète", "je prends", "j'en veux", "je veux acheter",
    "commander", "passer commande", "je confirme la commande",
    "ok pour la commande", "c'est bon pour la commande", "je valide",
    # delivery requests
    "livrez-moi", "livrer", "me livrer", "livraison",
    "envoyez-moi", "envoie-moi", "envoyez", "envoyer",
    "je prend", "je le prends", "je la prends", "je les prends",
    "donnez-moi", "donne-moi", "je prendrai",
    "i want", "i'd like", "i want to buy", "i'll take", "deliver", "send me", "give me",
]

EXPLICIT_CONFIRMATION_KEYWORDS = [
    "je confirme", "je valide", "ok pour la commande", "c'est bon", "d'accord",
    "je passe commande", "passer commande", "je commande", "je veux commander",
    "j'achète", "je prends", "je le prends", "je la prends", "je les prends",
    "livrez-moi", "me livrer", "livraison", "envoyez-moi", "envoie-moi",
    # short answers to "Confirmez-vous ?"
    "oui oui", "oui c'est bon", "okay", "parfait", "c'est parti",
]

REFUSAL_KEYWORDS = [
    "non", "pas", "attends", "attend", "attendez",
    "plus tard", "pas maintenant", "pas encore", "pas tout de suite",
    "je refuse", "je ne veux pas", "je ne souhaite pas",
    "annule", "annuler", "pas intéressé", "pas interessé",
    "no", "not", "wait", "later", "not now", "cancel",
]

QUESTION_KEYWORDS = [
    "quel", "quelle", "quels", "quelles", "combien", "comment",
    "pourquoi", "quoi", "où", "c'est quoi", "qu'est-ce",
    "connaître", "savoir", "demander", "informer", "renseigner",
    "détails", "détail", "information", "info", "specs", "spécifications",
    "caractéristiques", "description", "disponible", "dispo",
    "?",
    "what", "which", "how", "why", "where", "when",
    "know", "ask", "tell me", "details",
]

DELIVERY_WORDS = ["quartier", "ville", "commune", "adresse", "livraison"]

FRENCH_NUMBERS = {
    "un": 1, "une": 1, "deux": 2, "trois": 3, "quatre": 4, "cinq": 5,
    "six": 6, "sept": 7, "huit": 8, "neuf": 9, "dix": 10,
    "onze": 11, "douze": 12, "treize": 13, "quatorze": 14, "quinze": 15,
    "seize": 16, "vingt": 20, "trente": 30, "quarante": 40, "cinquante": 50,
}

PRODUCT_STOPWORDS = {"pour", "avec", "les", "des", "une", "aux", "sur"}

# Lead scoring
LEAD_HIGH_INTENT_KEYWORDS = [
    "acheter", "commander", "prix", "tarif", "coût", "combien",
    "disponible", "stock", "livraison", "payer", "paiement",
    "carte bancaire", "virement", "facture", "devis",
    "je veux", "je voudrais", "j'aimerais", "intéressé", "commander",
    "réserver", "achat", "budget",
]

LEAD_MEDIUM_INTENT_KEYWORDS = [
    "information", "renseignement", "détails", "caractéristiques",
    "option", "version", "modèle", "taille", "couleur",
    "garantie", "retour", "échange", "service",
    "quand", "délai", "temps", "urgent",
]

LEAD_NEGATIVE_KEYWORDS = [
    "spam", "pub", "publicité", "newsletter", "désabonner",
    "erreur", "mauvais numéro", "faux numéro", "stop",
]
