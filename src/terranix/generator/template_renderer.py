from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pathlib import Path

from terranix.utils.nix import nix_attr, nix_string

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

class TemplateRenderer:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.env.filters["nix_string"] = nix_string
        self.env.filters["nix_attr"] = nix_attr

    def render(self, template_name: str, context: dict) -> str:
        tmpl = self.env.get_template(template_name)
        return tmpl.render(**context)
