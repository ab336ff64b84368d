"""Routing of playlist group labels to catalog category files."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from .utils import strip_diacritics

ADULT_CATEGORY_LABEL = "[HOT] Adultos ❌❤️"


@dataclass(frozen=True)
class CategoryRoute:
    """Sends every group label containing ``key`` to ``base_name``."""

    key: str
    base_name: str


CATEGORY_ROUTES: tuple[CategoryRoute, ...] = (
    # Genres
    CategoryRoute("acao", "acao"),
    CategoryRoute("comedia", "comedia"),
    CategoryRoute("drama", "drama"),
    CategoryRoute("terror", "terror"),
    CategoryRoute("ficcao", "ficcao-cientifica"),
    CategoryRoute("animacao", "animacao"),
    CategoryRoute("infantil", "animacao"),
    CategoryRoute("desenho", "desenhos"),
    CategoryRoute("anime", "animes"),
    CategoryRoute("romance", "romance"),
    CategoryRoute("suspense", "suspense"),
    CategoryRoute("aventura", "aventura"),
    CategoryRoute("fantasia", "fantasia"),
    CategoryRoute("faroeste", "faroeste"),
    CategoryRoute("western", "western"),
    CategoryRoute("guerra", "guerra"),
    CategoryRoute("documentario", "documentario"),
    CategoryRoute("documentarios", "documentario"),
    CategoryRoute("docu", "docu"),
    CategoryRoute("biografia", "biografia"),
    CategoryRoute("historia", "historia"),
    CategoryRoute("crime", "crime"),
    CategoryRoute("policial", "crime"),
    CategoryRoute("misterio", "misterio"),
    CategoryRoute("familia", "familia"),
    CategoryRoute("musica", "musicais"),
    CategoryRoute("show", "shows"),
    CategoryRoute("dorama", "doramas"),
    CategoryRoute("novela", "novelas"),
    CategoryRoute("nacional", "nacionais"),
    CategoryRoute("religioso", "religiosos"),
    CategoryRoute("gospel", "religiosos"),
    CategoryRoute("lancamentos", "lancamentos"),
    # Streaming services
    CategoryRoute("netflix", "netflix"),
    CategoryRoute("amazon", "prime-video"),
    CategoryRoute("prime", "prime-video"),
    CategoryRoute("disney", "disney"),
    CategoryRoute("hbo", "max"),
    CategoryRoute("max", "max"),
    CategoryRoute("globo", "globoplay"),
    CategoryRoute("globoplay", "globoplay"),
    CategoryRoute("apple", "apple-tv"),
    CategoryRoute("paramount", "paramount"),
    CategoryRoute("star", "star"),
    CategoryRoute("discovery", "discovery"),
    CategoryRoute("amc", "amc-plus"),
    CategoryRoute("crunchyroll", "crunchyroll"),
    CategoryRoute("funimation", "funimation-now"),
    CategoryRoute("claro", "claro-video"),
    CategoryRoute("directv", "directv"),
    CategoryRoute("lionsgate", "lionsgate"),
    CategoryRoute("pluto", "plutotv"),
    CategoryRoute("plutotv", "plutotv"),
    CategoryRoute("univer", "univer"),
    CategoryRoute("sbt", "sbt"),
    CategoryRoute("brasil paralelo", "brasil-paralelo"),
    # Special collections
    CategoryRoute("4k", "uhd-4k"),
    CategoryRoute("uhd", "uhd-4k"),
    CategoryRoute("cinema", "cinema"),
    CategoryRoute("oscar", "oscar-2025"),
    CategoryRoute("stand-up", "stand-up-comedy"),
    CategoryRoute("standup", "stand-up-comedy"),
    CategoryRoute("esporte", "esportes"),
    CategoryRoute("esportes", "esportes"),
    CategoryRoute("sports", "esportes"),
    CategoryRoute("programa", "programas-de-tv"),
    CategoryRoute("tv show", "programas-de-tv"),
    CategoryRoute("turca", "novelas-turcas"),
    CategoryRoute("turkish", "novelas-turcas"),
    CategoryRoute("curso", "cursos"),
    CategoryRoute("cursos", "cursos"),
    CategoryRoute("dublagem", "dublagem-nao-oficial"),
    CategoryRoute("legendada", "legendadas"),
    CategoryRoute("legendadas", "legendadas"),
    CategoryRoute("legendado", "legendados"),
    CategoryRoute("outros", "outros"),
    CategoryRoute("outras", "outras-produtoras"),
    CategoryRoute("especial", "especial-infantil"),
    # Adult
    CategoryRoute("adultos", "hot-adultos"),
    CategoryRoute("adultos | bella da semana", "hot-adultos-bella-da-semana"),
    CategoryRoute("adultos | legendado", "hot-adultos-legendado"),
    CategoryRoute("xxx", "hot-adultos"),
)


def _normalise_label(value: str) -> str:
    return strip_diacritics(value).lower().strip()


class CategoryMap:
    """Resolve group labels using the longest matching route key."""

    def __init__(self, routes: Iterable[CategoryRoute] = CATEGORY_ROUTES):
        merged: dict[str, CategoryRoute] = {}
        for route in routes:
            key = _normalise_label(route.key)
            if not key:
                continue
            merged[key] = CategoryRoute(key=key, base_name=route.base_name)
        self._routes = tuple(merged.values())

    @classmethod
    def with_overrides(cls, overrides: Mapping[str, str] | None) -> "CategoryMap":
        routes = list(CATEGORY_ROUTES)
        for key, base_name in (overrides or {}).items():
            routes.append(CategoryRoute(key=key, base_name=base_name))
        return cls(routes)

    @property
    def routes(self) -> tuple[CategoryRoute, ...]:
        return self._routes

    def resolve(self, group: str | None) -> str | None:
        """Return the category base name for ``group`` or ``None`` when unmapped.

        When several keys occur in the label the longest one wins; equal
        lengths fall back to table order.
        """

        if not group:
            return None
        label = _normalise_label(group)
        best: CategoryRoute | None = None
        for route in self._routes:
            if route.key not in label:
                continue
            if best is None or len(route.key) > len(best.key):
                best = route
        return best.base_name if best else None


def is_adult_target(base_name: str, group: str) -> bool:
    """Return ``True`` for items routed to an adult category."""

    return "adultos" in base_name or "xxx" in (group or "").lower()
