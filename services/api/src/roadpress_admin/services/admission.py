"""请求准入规则表。

每个入站请求按规则表自上而下匹配，首条命中生效；未命中任何规则的路径需要会话。
规则以数据形式维护，`classify_path` 为纯函数，可脱离服务器单独测试。
静态文件规则排在最前，所以公开前缀必须与敏感路径保持不相交，
可用 `find_rule_overlaps` 检查一组路径是否同时命中多条规则。
"""

import re
from dataclasses import dataclass
from enum import StrEnum


class Admission(StrEnum):
    """路径准入分类。"""

    PUBLIC_ASSET = "public_asset"  # 静态文件与 SEO/爬虫策略文件。
    PUBLIC_API = "public_api"  # 插件等机器接口，由处理函数自行认证。
    PUBLIC_PAGE = "public_page"  # 无需登录即可访问的页面（登录页）。
    PROTECTED = "protected"  # 需要有效会话。


@dataclass(frozen=True)
class AdmissionRule:
    pattern: re.Pattern[str]
    admission: Admission

    def matches(self, path: str) -> bool:
        return self.pattern.search(path) is not None


def _exact(path: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(path)}$")


def _prefix(path: str) -> re.Pattern[str]:
    # 按路径段匹配：/api/auth 命中 /api/auth 与 /api/auth/...，不命中 /api/authx。
    return re.compile(rf"^{re.escape(path.rstrip('/'))}(?:/|$)")


PUBLIC_FILES = ("/robots.txt", "/sitemap.xml", "/ai.txt", "/llms.txt", "/favicon.ico")
STATIC_PREFIXES = ("/static",)
IMAGE_EXTENSIONS = ("svg", "png", "jpg", "jpeg", "gif", "webp", "ico")
PUBLIC_API_PATHS = (
    "/auth",
    "/debug",
    "/licenses/verify",
    "/licenses/update",
    "/licenses/disassociate",
    "/statistics",
    "/api-keys",
    "/poi/sync",
    "/health",
    "/admin/bootstrap",
)
PUBLIC_PAGES = ("/login", "/login/2fa")


def build_admission_rules(api_prefix: str = "/api") -> tuple[AdmissionRule, ...]:
    """按接口前缀生成有序规则表。"""
    rules: list[AdmissionRule] = []
    rules.extend(AdmissionRule(_exact(path), Admission.PUBLIC_ASSET) for path in PUBLIC_FILES)
    rules.extend(AdmissionRule(_prefix(path), Admission.PUBLIC_ASSET) for path in STATIC_PREFIXES)
    rules.append(
        AdmissionRule(
            re.compile(rf"\.(?:{'|'.join(IMAGE_EXTENSIONS)})$", re.IGNORECASE),
            Admission.PUBLIC_ASSET,
        )
    )
    rules.extend(AdmissionRule(_prefix(f"{api_prefix}{path}"), Admission.PUBLIC_API) for path in PUBLIC_API_PATHS)
    rules.extend(AdmissionRule(_exact(path), Admission.PUBLIC_PAGE) for path in PUBLIC_PAGES)
    return tuple(rules)


ADMISSION_RULES = build_admission_rules()


def match_rule(path: str, rules: tuple[AdmissionRule, ...] = ADMISSION_RULES) -> AdmissionRule | None:
    for rule in rules:
        if rule.matches(path):
            return rule
    return None


def classify_path(path: str, rules: tuple[AdmissionRule, ...] = ADMISSION_RULES) -> Admission:
    """返回路径的准入分类；无规则命中时为 PROTECTED。"""
    rule = match_rule(path, rules)
    return rule.admission if rule is not None else Admission.PROTECTED


def find_rule_overlaps(
    paths: list[str] | tuple[str, ...],
    rules: tuple[AdmissionRule, ...] = ADMISSION_RULES,
) -> dict[str, list[Admission]]:
    """找出同时命中多条规则的路径，便于审查公开白名单。"""
    overlaps: dict[str, list[Admission]] = {}
    for path in paths:
        hits = [rule.admission for rule in rules if rule.matches(path)]
        if len(hits) > 1:
            overlaps[path] = hits
    return overlaps
