"""
Nginx Route Renderer

Architectural Intent:
- Implements RouteRendererPort for nginx reverse-proxy server blocks
- One config file per app so apps on a shared node never overwrite each other
- TLS is opportunistic: certbot runs only where it is installed
"""

from typing import Optional, Sequence

from opsfleet.domain.entities.app_config import RouteDef

SITES_AVAILABLE = "/etc/nginx/sites-available"
SITES_ENABLED = "/etc/nginx/sites-enabled"

_SERVER_BLOCK = """server {{
    listen 80;
    server_name {domain};

    location / {{
        proxy_pass http://127.0.0.1:{port};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection "upgrade";
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_read_timeout 86400;
        proxy_buffering off;
        proxy_cache off;
        chunked_transfer_encoding on;
    }}
}}
"""


class NginxRouteRenderer:
    def render(self, app_name: str, routes: Sequence[RouteDef]) -> str:
        return "\n".join(
            _SERVER_BLOCK.format(domain=r.domain, port=r.port) for r in routes
        )

    def conf_name(self, app_name: str) -> str:
        return f"ops-{app_name}.conf"

    def config_path(self, app_name: str) -> str:
        return f"{SITES_AVAILABLE}/{self.conf_name(app_name)}"

    def activate_command(self, app_name: str) -> str:
        return (
            f"ln -sf {self.config_path(app_name)} {SITES_ENABLED}/ "
            "&& nginx -t && systemctl reload nginx"
        )

    def tls_command(self, routes: Sequence[RouteDef]) -> Optional[str]:
        domains = [r.domain for r in routes if r.ssl]
        if not domains:
            return None
        domain_args = " ".join(f"-d {d}" for d in domains)
        return (
            f"which certbot > /dev/null 2>&1 && certbot --nginx {domain_args} "
            f"--non-interactive --agree-tos --email admin@{domains[0]} "
            "|| echo 'certbot not installed, skipping SSL'"
        )
