#!/usr/bin/env python3
"""
Sample Corpus for the Retrieval Core

Short Spanish compliance documents (policies, procedures, contracts and
audit reports) shaped the way the ingestion layer hands them over.

Usage:
    python -m tests.fixtures.sample_data --count 50 --output data/sample_corpus.jsonl
"""

import json
import random
from pathlib import Path
from typing import Any, Dict, List

from search.models import Document

# =============================================================================
# Document Templates
# =============================================================================

DOCUMENTS = [
    {
        "id": "pol-001",
        "content": (
            "Política de contraseñas. Toda contraseña debe tener doce caracteres "
            "como mínimo. La contraseña se renueva cada noventa días y ninguna "
            "contraseña anterior puede reutilizarse. El administrador nunca solicita "
            "la contraseña por correo. Bloqueo tras cinco intentos con contraseña errónea."
        ),
        "metadata": {
            "filename": "politica_contrasenas.pdf",
            "type": "policy",
            "standards": ["ISO 27001", "NIST 800-63"],
            "key_phrases": ["gestión de credenciales", "bloqueo de cuenta"],
        },
    },
    {
        "id": "pol-002",
        "content": (
            "Política de control de acceso. El acceso a sistemas críticos requiere "
            "autenticación multifactor. Los permisos se asignan según el principio "
            "de mínimo privilegio y se revisan trimestralmente."
        ),
        "metadata": {
            "filename": "control_acceso.docx",
            "type": "policy",
            "standards": ["ISO 27001", "SOC 2"],
            "key_phrases": ["mínimo privilegio", "autenticación multifactor"],
        },
    },
    {
        "id": "proc-001",
        "content": (
            "Procedimiento de gestión de incidentes. Cualquier incidente de seguridad "
            "se notifica al equipo de respuesta en menos de una hora. Se documenta "
            "la causa raíz y las acciones correctivas."
        ),
        "metadata": {
            "filename": "gestion_incidentes.pdf",
            "type": "procedure",
            "standards": ["ISO 27001"],
            "key_phrases": ["respuesta a incidentes", "causa raíz"],
        },
    },
    {
        "id": "proc-002",
        "content": (
            "Procedimiento de copias de seguridad. Las copias se ejecutan cada noche, "
            "se cifran con AES-256 y se almacenan fuera de las instalaciones durante "
            "treinta días. Restauraciones de prueba mensuales."
        ),
        "metadata": {
            "filename": "backup_restauracion.pdf",
            "type": "procedure",
            "standards": ["ISO 22301"],
            "key_phrases": ["continuidad de negocio", "cifrado"],
        },
    },
    {
        "id": "con-001",
        "content": (
            "Contrato de tratamiento de datos personales con el proveedor de nube. "
            "El encargado trata los datos solo bajo instrucciones documentadas y "
            "notifica brechas en setenta y dos horas."
        ),
        "metadata": {
            "filename": "dpa_proveedor_nube.pdf",
            "type": "contract",
            "standards": ["RGPD"],
            "key_phrases": ["encargado del tratamiento", "notificación de brechas"],
        },
    },
    {
        "id": "aud-001",
        "content": (
            "Informe de auditoría interna. Se detectaron cuentas de usuario inactivas "
            "sin revisión de permisos y registros de eventos conservados solo siete días."
        ),
        "metadata": {
            "filename": "auditoria_interna_q3.xlsx",
            "type": "report",
            "standards": ["SOC 2", "ISO 27001"],
            "key_phrases": ["hallazgos", "cuentas inactivas"],
        },
    },
]

FILLER_SENTENCES = [
    "El responsable de cumplimiento revisa este documento anualmente.",
    "Las excepciones requieren aprobación escrita de la dirección.",
    "Los empleados reciben formación de concienciación cada semestre.",
    "El incumplimiento puede derivar en medidas disciplinarias.",
    "Los registros se conservan conforme al calendario de retención.",
]


def make_document(template: Dict[str, Any]) -> Document:
    """Build a Document from a template dictionary."""
    return Document(
        id=template["id"],
        content=template["content"],
        metadata=template.get("metadata", {}),
    )


def sample_documents() -> List[Document]:
    """The fixed sample corpus, in a stable order."""
    return [make_document(template) for template in DOCUMENTS]


def generate_sample_corpus(count: int = 50, seed: int = 7) -> List[Document]:
    """
    Generate a larger corpus by varying the templates.

    Args:
        count: Number of documents
        seed: Random seed (the same seed always yields the same corpus)
    """
    rng = random.Random(seed)
    documents = []

    for i in range(count):
        template = DOCUMENTS[i % len(DOCUMENTS)]
        extra = " ".join(rng.sample(FILLER_SENTENCES, k=2))
        documents.append(Document(
            id=f"{template['id']}-{i:04d}",
            content=f"{template['content']} {extra}",
            metadata=template["metadata"],
        ))

    return documents


def save_corpus(documents: List[Document], output_path: str):
    """Save documents to a JSONL file."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        for doc in documents:
            f.write(json.dumps(doc.to_dict(), ensure_ascii=False) + '\n')

    print(f"Saved {len(documents)} documents to {path}")


# =============================================================================
# CLI
# =============================================================================

if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description="Generate a sample compliance corpus")
    parser.add_argument('--count', type=int, default=50, help="Number of documents to generate")
    parser.add_argument('--output', type=str, default='data/sample_corpus.jsonl',
                        help="Output file path")

    args = parser.parse_args()

    save_corpus(generate_sample_corpus(args.count), args.output)
