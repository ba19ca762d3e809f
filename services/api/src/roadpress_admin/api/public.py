"""公开的爬虫策略与站点地图。

后台不可被索引：robots.txt 对所有爬虫（含 AI 爬虫）禁止抓取，站点地图为空。
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse, Response

router = APIRouter(tags=["public"], include_in_schema=False)

BLOCKED_USER_AGENTS = (
    "*",
    "Googlebot",
    "GPTBot",
    "ChatGPT-User",
    "Google-Extended",
    "anthropic-ai",
    "Claude-Web",
    "CCBot",
    "Bytespider",
    "Diffbot",
    "FacebookBot",
    "PerplexityBot",
    "Amazonbot",
)

EMPTY_SITEMAP = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"></urlset>\n'
)

AI_POLICY = (
    "# Private administration interface.\n"
    "# Content may not be crawled, indexed or used to train AI models.\n"
    "User-Agent: *\n"
    "Disallow: /\n"
)


def render_robots() -> str:
    return "\n".join(f"User-Agent: {agent}\nDisallow: /\n" for agent in BLOCKED_USER_AGENTS)


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots() -> str:
    return render_robots()


@router.get("/sitemap.xml")
def sitemap() -> Response:
    return Response(content=EMPTY_SITEMAP, media_type="application/xml")


@router.get("/ai.txt", response_class=PlainTextResponse)
@router.get("/llms.txt", response_class=PlainTextResponse)
def ai_policy() -> str:
    return AI_POLICY
