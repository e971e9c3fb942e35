import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure le logging racine une seule fois (appelé par create_app).
    Un niveau inconnu retombe sur INFO.
    """
    numeric = logging.getLevelName((level or "INFO").upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=numeric, format=LOG_FORMAT)
    root.setLevel(numeric)

    # httpx logue chaque requête en INFO : trop bavard pour nous
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
