"""
Chat Assistant Tools

Tool schemas offered to Claude and the executor that runs them. Every
tool is scoped to the authenticated user: project and keyword lookups
outside the user's projects come back as error results, never as data.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from rankpilot.auth.models import User
from rankpilot.database.models import Backlink, GSCData, Keyword, Project
from rankpilot.database.repository import get_latest_rankings, summarize_positions
from rankpilot.pages.analyzer import PageAnalyzer
from rankpilot.pages.audits import save_page_audit
from rankpilot.services.backlinks import backlink_to_dict
from rankpilot.services.keyword_research import keyword_to_dict
from rankpilot.services.rankings import get_ranking_history, ranking_to_dict

logger = logging.getLogger(__name__)

UNKNOWN_TOOL = {"error": "Unknown tool"}


TOOLS: List[Dict[str, Any]] = [
    {
        "name": "get_project_keywords",
        "description": "Get all keywords for a specific project with their metrics",
        "input_schema": {
            "type": "object",
            "properties": {
                "project_id": {"type": "string", "description": "The UUID of the project"},
            },
            "required": ["project_id"],
        },
    },
    {
        "name": "get_ranking_history",
        "description": "Get historical ranking data for a keyword",
        "input_schema": {
            "type": "object",
            "properties": {
                "keyword_id": {"type": "string", "description": "The UUID of the keyword"},
                "days": {
                    "type": "number",
                    "description": "Number of days of history to retrieve (default 30)",
                },
            },
            "required": ["keyword_id"],
        },
    },
    {
        "name": "get_user_projects",
        "description": "Get all projects for the current user",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "get_backlinks",
        "description": "Get backlink data for a project",
        "input_schema": {
            "type": "object",
            "properties": {
                "project_id": {"type": "string", "description": "The UUID of the project"},
            },
            "required": ["project_id"],
        },
    },
    {
        "name": "get_gsc_data",
        "description": "Get Google Search Console data for a project",
        "input_schema": {
            "type": "object",
            "properties": {
                "project_id": {"type": "string", "description": "The UUID of the project"},
                "days": {
                    "type": "number",
                    "description": "Number of days of data to retrieve (default 30)",
                },
            },
            "required": ["project_id"],
        },
    },
    {
        "name": "analyze_keyword_performance",
        "description": "Analyze keyword performance and provide insights",
        "input_schema": {
            "type": "object",
            "properties": {
                "project_id": {"type": "string", "description": "The UUID of the project"},
            },
            "required": ["project_id"],
        },
    },
    {
        "name": "analyze_page_seo",
        "description": (
            "Analyze on-page SEO for a specific URL. Returns title, meta description, "
            "headings, word count, image alt text analysis, internal/external links, "
            "schema markup, and keyword optimization if target keyword provided."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The full URL to analyze (e.g., https://example.com/page)",
                },
                "project_id": {
                    "type": "string",
                    "description": "Optional project ID to associate this audit with",
                },
                "target_keyword": {
                    "type": "string",
                    "description": (
                        "Optional keyword to analyze keyword optimization (checks if keyword "
                        "appears in title, H1, meta, URL, and calculates density)"
                    ),
                },
            },
            "required": ["url"],
        },
    },
]


class ToolAccessError(Exception):
    """Requested object is unknown or belongs to another user."""
    pass


def _as_uuid(value: Any, label: str) -> UUID:
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except (TypeError, ValueError):
        raise ToolAccessError(f"Invalid {label}: {value}")


def project_to_dict(project: Project) -> Dict[str, Any]:
    return {
        "id": str(project.id),
        "name": project.name,
        "domain": project.domain,
        "target_location": project.target_location,
        "location_code": project.location_code,
        "language_code": project.language_code,
        "created_at": project.created_at.isoformat() if project.created_at else None,
    }


class ToolExecutor:
    """
    Runs chat tools on behalf of one user.

    Usage:
        executor = ToolExecutor(db, user, page_analyzer)
        result = await executor.execute("get_user_projects", {})
    """

    def __init__(self, db: Session, user: User, page_analyzer: Optional[PageAnalyzer] = None):
        self.db = db
        self.user = user
        self.page_analyzer = page_analyzer

        self._handlers: Dict[str, Callable] = {
            "get_user_projects": self.get_user_projects,
            "get_project_keywords": self.get_project_keywords,
            "get_ranking_history": self.get_ranking_history,
            "get_backlinks": self.get_backlinks,
            "get_gsc_data": self.get_gsc_data,
            "analyze_keyword_performance": self.analyze_keyword_performance,
            "analyze_page_seo": self.analyze_page_seo,
        }

    async def execute(self, name: str, tool_input: Optional[Dict[str, Any]]) -> Any:
        """
        Run one tool. Failures become error results so the conversation
        can continue.
        """
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"Claude requested unknown tool '{name}'")
            return dict(UNKNOWN_TOOL)

        try:
            return await handler(**(tool_input or {}))
        except ToolAccessError as e:
            return {"error": str(e)}
        except TypeError as e:
            return {"error": f"Invalid input for {name}: {e}"}
        except Exception as e:
            self.db.rollback()
            logger.error(f"Tool {name} failed: {e}")
            return {"error": f"Tool {name} failed: {e}"}

    # ========================================================================
    # SCOPING
    # ========================================================================

    def _project(self, project_id: Any) -> Project:
        project = self.db.get(Project, _as_uuid(project_id, "project_id"))
        if project is None or not self.user.can_access_project(project):
            raise ToolAccessError(f"Project {project_id} not found")
        return project

    def _keyword(self, keyword_id: Any) -> Keyword:
        keyword = self.db.get(Keyword, _as_uuid(keyword_id, "keyword_id"))
        if not keyword:
            raise ToolAccessError(f"Keyword {keyword_id} not found")
        self._project(keyword.project_id)
        return keyword

    # ========================================================================
    # TOOLS
    # ========================================================================

    async def get_user_projects(self) -> List[Dict[str, Any]]:
        projects = (
            self.db.query(Project)
            .filter(Project.user_id == self.user.id)
            .order_by(Project.created_at.desc())
            .all()
        )
        return [project_to_dict(project) for project in projects]

    async def get_project_keywords(self, project_id: str) -> List[Dict[str, Any]]:
        project = self._project(project_id)
        keywords = self.db.query(Keyword).filter(Keyword.project_id == project.id).all()
        return [keyword_to_dict(keyword) for keyword in keywords]

    async def get_ranking_history(self, keyword_id: str, days: int = 30) -> List[Dict[str, Any]]:
        keyword = self._keyword(keyword_id)
        rankings = get_ranking_history(self.db, keyword.id, days=int(days or 30))
        return [ranking_to_dict(ranking) for ranking in rankings]

    async def get_backlinks(self, project_id: str) -> List[Dict[str, Any]]:
        project = self._project(project_id)
        backlinks = (
            self.db.query(Backlink)
            .filter(Backlink.project_id == project.id, Backlink.is_lost.is_(False))
            .all()
        )
        return [backlink_to_dict(backlink) for backlink in backlinks]

    async def get_gsc_data(self, project_id: str, days: int = 30) -> List[Dict[str, Any]]:
        project = self._project(project_id)
        since = (datetime.utcnow() - timedelta(days=int(days or 30))).date()
        rows = (
            self.db.query(GSCData)
            .filter(GSCData.project_id == project.id, GSCData.date >= since)
            .order_by(GSCData.date.desc())
            .all()
        )
        return [
            {
                "date": row.date.isoformat(),
                "query": row.query,
                "page": row.page,
                "device": row.device,
                "country": row.country,
                "clicks": row.clicks,
                "impressions": row.impressions,
                "ctr": row.ctr,
                "position": row.position,
            }
            for row in rows
        ]

    async def analyze_keyword_performance(self, project_id: str) -> Dict[str, Any]:
        project = self._project(project_id)
        keywords = self.db.query(Keyword).filter(Keyword.project_id == project.id).all()
        latest = get_latest_rankings(self.db, [keyword.id for keyword in keywords])

        return {
            "total_keywords": len(keywords),
            "tracked_keywords": len(latest),
            **summarize_positions(list(latest.values())),
            "keywords": [keyword_to_dict(keyword) for keyword in keywords],
        }

    async def analyze_page_seo(
        self,
        url: str,
        project_id: Optional[str] = None,
        target_keyword: Optional[str] = None,
    ) -> Dict[str, Any]:
        if self.page_analyzer is None:
            return {"error": "Page analysis is not available"}

        project = self._project(project_id) if project_id else None

        try:
            analysis = await self.page_analyzer.analyze(url, target_keyword)
        except Exception as e:
            return {"error": f"Failed to analyze page: {e}", "details": repr(e)}

        audit = save_page_audit(self.db, analysis, self.user.id, project.id if project else None)
        self.db.commit()

        return analysis.to_summary(str(audit.id))
