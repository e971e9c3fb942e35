import io
from pypdf import PdfReader


def extract_text_from_bytes(data: bytes) -> str:
    """
    Extrait le texte de toutes les pages d'un PDF reçu en mémoire.
    Les pages sans texte sont ignorées. Lève ValueError si le PDF est vide
    ou illisible.
    """
    if not data:
        raise ValueError("Fichier vide.")

    try:
        reader = PdfReader(io.BytesIO(data))
        text_parts = []
        for page in reader.pages:
            txt = page.extract_text() or ""
            if txt.strip():
                text_parts.append(txt)
    except Exception as e:
        raise ValueError(f"PDF illisible: {e}") from e

    return "\n".join(text_parts)
