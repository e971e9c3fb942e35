from typing import Iterable, Tuple


def decode_text(data: bytes) -> str:
    """
    Décode un fichier texte uploadé (UTF-8, BOM toléré).
    Les octets invalides sont remplacés plutôt que de faire échouer l'upload.
    """
    if not data:
        return ""
    return data.decode("utf-8-sig", errors="replace")


def fragment_header(name: str) -> str:
    return f"=== {name} ==="


def combine_fragments(fragments: Iterable[Tuple[str, str]]) -> str:
    """
    Concatène des (nom_fichier, texte) dans l'ordre, chaque fragment précédé
    d'une ligne d'en-tête nommant sa source.
    """
    parts = [f"{fragment_header(name)}\n{text}" for name, text in fragments]
    return "\n\n".join(parts)
