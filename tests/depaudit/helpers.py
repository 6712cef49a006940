"""Row builders shared by the DAO, service and API tests."""


def license_item(component: str, license_name: str, status: str, path: str | None = None) -> dict:
    return {
        "display_identifier": component,
        "license_name": license_name,
        "status": status,
        "path": path or f"node_modules/{component.split('@')[0]}",
    }


def vuln_item(
    component: str, vuln_id: str, severity: str, path: str | None = None, title: str | None = None
) -> dict:
    return {
        "display_identifier": component,
        "vulnerability_id": vuln_id,
        "title": title or f"{vuln_id} in {component}",
        "severity": severity,
        "path": path or f"node_modules/{component.split('@')[0]}",
    }
