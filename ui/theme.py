"""Dark theme styling helper."""
from __future__ import annotations

from PySide6.QtGui import QColor, QPalette
from PySide6.QtWidgets import QApplication, QStyleFactory

BadgeStyle = tuple[str, str, str]

NEUTRAL_BADGE: BadgeStyle = ("#e5e7eb", "#4b5563", "#9ca3af")

STATUS_BADGES: dict[str, BadgeStyle] = {
    "exported": ("#dcfce7", "#14532d", "#22c55e"),
    "planned": ("#e0f2fe", "#075985", "#38bdf8"),
    "failed": ("#fee2e2", "#7f1d1d", "#ef4444"),
    "skipped": ("#fef3c7", "#78350f", "#f59e0b"),
    "installed": ("#dbeafe", "#1e3a8a", "#3b82f6"),
    "parsed": ("#ccfbf1", "#0f766e", "#14b8a6"),
}


def status_badge_style(status: str) -> BadgeStyle:
    return STATUS_BADGES.get(status.lower(), NEUTRAL_BADGE)


def badge_stylesheet(style: BadgeStyle) -> str:
    return (
        "QLabel {"
        f"color: {style[0]};"
        f"background-color: {style[1]};"
        f"border: 1px solid {style[2]};"
        "border-radius: 8px;"
        "padding: 2px 6px;"
        "font-weight: 600;"
        "}"
    )


def apply_dark_theme() -> None:
    app = QApplication.instance()
    if app is None:
        return

    app.setStyle(QStyleFactory.create("Fusion"))

    background = QColor("#1e1e1e")
    surface = QColor(32, 32, 32)
    text = QColor(230, 230, 230)
    accent = QColor("#007acc")
    disabled_text = QColor(130, 130, 130)

    palette = QPalette()
    palette.setColor(QPalette.Window, background)
    palette.setColor(QPalette.WindowText, text)
    palette.setColor(QPalette.Base, QColor(18, 18, 18))
    palette.setColor(QPalette.AlternateBase, surface)
    palette.setColor(QPalette.ToolTipBase, surface)
    palette.setColor(QPalette.ToolTipText, text)
    palette.setColor(QPalette.Text, text)
    palette.setColor(QPalette.Button, surface)
    palette.setColor(QPalette.ButtonText, text)
    palette.setColor(QPalette.BrightText, QColor("#ff4081"))
    palette.setColor(QPalette.Highlight, accent)
    palette.setColor(QPalette.HighlightedText, QColor("#ffffff"))
    palette.setColor(QPalette.Disabled, QPalette.Text, disabled_text)
    palette.setColor(QPalette.Disabled, QPalette.ButtonText, disabled_text)
    palette.setColor(QPalette.Disabled, QPalette.WindowText, disabled_text)
    app.setPalette(palette)
