"""
Workflow models shipped with the portal. `from_step` 0 marks the entry
transition and a `to_step` of None ends the workflow.
"""
from typing import Any

PREDEFINED_WORKFLOWS: list[dict[str, Any]] = [
    {
        "code": "DL_MONOGRAPHIE",
        "name": "Dépôt légal - Monographies",
        "description": "Circuit de validation et d'attribution des numéros pour les monographies.",
        "workflow_type": "legal_deposit",
        "module": "legal_deposit",
        "color": "#2563eb",
        "roles": [
            {"name": "Déposant", "level": "external"},
            {"name": "Agent dépôt légal", "level": "module"},
            {"name": "Comité de validation", "level": "module"},
            {"name": "Responsable ABN", "level": "system"},
        ],
        "steps": [
            {"order": 1, "name": "Soumission de la demande", "type": "submission", "required_role": "Déposant"},
            {"order": 2, "name": "Validation par le service", "type": "validation", "required_role": "Agent dépôt légal"},
            {"order": 3, "name": "Validation par le comité", "type": "approval", "required_role": "Comité de validation"},
            {"order": 4, "name": "Attribution des numéros", "type": "processing", "required_role": "Responsable ABN"},
            {"order": 5, "name": "Réception des exemplaires", "type": "completion", "required_role": "Agent dépôt légal"},
        ],
        "transitions": [
            {"from_step": 0, "to_step": 1, "name": "Créer la demande", "condition": None},
            {"from_step": 1, "to_step": 2, "name": "Soumettre", "condition": None},
            {"from_step": 2, "to_step": 3, "name": "Valider", "condition": "status == valide_par_b"},
            {"from_step": 2, "to_step": None, "name": "Rejeter", "condition": "status == rejete_par_b"},
            {"from_step": 3, "to_step": 4, "name": "Approuver", "condition": "status == valide_par_comite"},
            {"from_step": 3, "to_step": None, "name": "Rejeter", "condition": "status == rejete_par_comite"},
            {"from_step": 4, "to_step": 5, "name": "Attribuer", "condition": None},
            {"from_step": 5, "to_step": None, "name": "Réceptionner", "condition": None},
        ],
    },
    {
        "code": "INSCRIPTION_PRO",
        "name": "Inscription des professionnels",
        "description": "Examen des demandes d'inscription des éditeurs, imprimeurs, producteurs et distributeurs.",
        "workflow_type": "registration",
        "module": "professionals",
        "color": "#16a34a",
        "roles": [
            {"name": "Professionnel", "level": "external"},
            {"name": "Gestionnaire registre", "level": "module"},
        ],
        "steps": [
            {"order": 1, "name": "Demande d'inscription", "type": "submission", "required_role": "Professionnel"},
            {"order": 2, "name": "Examen du dossier", "type": "validation", "required_role": "Gestionnaire registre"},
            {"order": 3, "name": "Création du compte", "type": "completion", "required_role": "Gestionnaire registre"},
        ],
        "transitions": [
            {"from_step": 0, "to_step": 1, "name": "Déposer la demande", "condition": None},
            {"from_step": 1, "to_step": 2, "name": "Transmettre", "condition": None},
            {"from_step": 2, "to_step": 3, "name": "Approuver", "condition": "approve == true"},
            {"from_step": 2, "to_step": None, "name": "Rejeter", "condition": "approve == false"},
            {"from_step": 3, "to_step": None, "name": "Clôturer", "condition": None},
        ],
    },
    {
        "code": "RESA_ESPACES",
        "name": "Réservation des espaces culturels",
        "description": "Traitement des demandes de réservation des espaces culturels.",
        "workflow_type": "booking",
        "module": "cultural_activities",
        "color": "#d97706",
        "roles": [
            {"name": "Demandeur", "level": "external"},
            {"name": "Responsable activités culturelles", "level": "module"},
        ],
        "steps": [
            {"order": 1, "name": "Demande de réservation", "type": "submission", "required_role": "Demandeur"},
            {"order": 2, "name": "Vérification de disponibilité", "type": "validation", "required_role": "Responsable activités culturelles"},
            {"order": 3, "name": "Confirmation", "type": "completion", "required_role": "Responsable activités culturelles"},
        ],
        "transitions": [
            {"from_step": 0, "to_step": 1, "name": "Réserver", "condition": None},
            {"from_step": 1, "to_step": 2, "name": "Examiner", "condition": None},
            {"from_step": 2, "to_step": 3, "name": "Valider", "condition": "status == validee"},
            {"from_step": 2, "to_step": None, "name": "Refuser", "condition": "status == rejetee"},
            {"from_step": 3, "to_step": None, "name": "Envoyer la confirmation", "condition": None},
        ],
    },
    {
        "code": "REPRODUCTION",
        "name": "Demande de reproduction",
        "description": "Reproduction de documents: devis, paiement et livraison.",
        "workflow_type": "reproduction",
        "module": "reproduction",
        "color": "#9333ea",
        "roles": [
            {"name": "Usager", "level": "external"},
            {"name": "Agent reproduction", "level": "module"},
            {"name": "Comptable", "level": "module"},
        ],
        "steps": [
            {"order": 1, "name": "Demande", "type": "submission", "required_role": "Usager"},
            {"order": 2, "name": "Validation technique", "type": "validation", "required_role": "Agent reproduction"},
            {"order": 3, "name": "Paiement", "type": "payment", "required_role": "Comptable"},
            {"order": 4, "name": "Réalisation", "type": "processing", "required_role": "Agent reproduction"},
            {"order": 5, "name": "Livraison", "type": "completion", "required_role": "Agent reproduction"},
        ],
        "transitions": [
            {"from_step": 0, "to_step": 1, "name": "Créer la demande", "condition": None},
            {"from_step": 1, "to_step": 2, "name": "Soumettre", "condition": None},
            {"from_step": 2, "to_step": 3, "name": "Valider", "condition": None},
            {"from_step": 2, "to_step": None, "name": "Refuser", "condition": "rejected"},
            {"from_step": 3, "to_step": 4, "name": "Confirmer le paiement", "condition": "payment == completed"},
            {"from_step": 4, "to_step": 5, "name": "Terminer", "condition": None},
            {"from_step": 5, "to_step": None, "name": "Livrer", "condition": None},
        ],
    },
]


def get_predefined(name: str) -> dict[str, Any] | None:
    return next((m for m in PREDEFINED_WORKFLOWS if m["name"] == name), None)
