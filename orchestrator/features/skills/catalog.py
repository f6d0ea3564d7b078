from __future__ import annotations

from .types import Skill

PLATFORM_SKILLS: tuple[Skill, ...] = (
    Skill(
        id="platform-ui-components",
        name="UI Components",
        slug="ui-components",
        description="Guidelines for creating and modifying UI components",
        content=(
            "When creating or modifying UI elements:\n"
            "- Reuse component patterns already present in the project\n"
            "- Keep elements accessible: labels, keyboard navigation, ARIA attributes\n"
            "- Match the existing design system\n"
            "- Check both mobile and desktop viewport sizes"
        ),
        triggers=["button", "form", "modal", "dialog", "input", "select", "card", "component", "ui"],
    ),
    Skill(
        id="platform-api-integration",
        name="API Integration",
        slug="api-integration",
        description="Guidelines for API calls and data fetching",
        content=(
            "When working with APIs and data:\n"
            "- Handle loading, error and empty states\n"
            "- Follow the project's existing data-fetching pattern\n"
            "- Show users plain-language error messages\n"
            "- Never expose secrets or API keys in client-side code"
        ),
        triggers=["api", "fetch", "data", "endpoint", "request", "response", "query"],
    ),
    Skill(
        id="platform-forms",
        name="Form Handling",
        slug="forms",
        description="Guidelines for form creation and validation",
        content=(
            "When creating or modifying forms:\n"
            "- Validate inputs before submission\n"
            "- Show errors next to the field they belong to\n"
            "- Disable the submit button while a request is in flight\n"
            "- Confirm successful submission"
        ),
        triggers=["form", "input", "validation", "submit", "field", "checkbox", "radio"],
    ),
    Skill(
        id="platform-navigation",
        name="Navigation & Routing",
        slug="navigation",
        description="Guidelines for page navigation and routing",
        content=(
            "When working with navigation:\n"
            "- Use the project's router conventions\n"
            "- Keep the back button working as users expect\n"
            "- Handle not-found and error pages"
        ),
        triggers=["navigation", "route", "link", "page", "redirect", "menu", "sidebar"],
    ),
    Skill(
        id="platform-styling",
        name="Styling & Design",
        slug="styling",
        description="Guidelines for visual styling and design consistency",
        content=(
            "When applying styles:\n"
            "- Follow the existing colors, spacing and typography\n"
            "- Use the project's CSS approach (Tailwind, CSS modules, ...)\n"
            "- Support dark mode if the project already does\n"
            "- Keep layouts responsive"
        ),
        triggers=["style", "css", "color", "theme", "dark mode", "responsive", "layout", "design"],
    ),
    Skill(
        id="platform-testing",
        name="Testing",
        slug="testing",
        description="Guidelines for adding tests",
        content=(
            "When adding or modifying tests:\n"
            "- Follow the project's existing test layout\n"
            "- Test user-facing behavior rather than implementation details\n"
            "- Cover edge cases and error paths"
        ),
        triggers=["test", "testing", "spec", "jest", "vitest", "pytest", "cypress", "playwright"],
    ),
)

TECH_SKILLS: dict[str, Skill] = {
    "react": Skill(
        id="tech-react",
        name="React Patterns",
        slug="react",
        description="React-specific best practices",
        content=(
            "React guidelines:\n"
            "- Use function components with hooks\n"
            "- Follow the existing state management approach\n"
            "- Give list items stable keys"
        ),
        triggers=["react", "component", "hook", "usestate", "useeffect", "jsx"],
    ),
    "nextjs": Skill(
        id="tech-nextjs",
        name="Next.js Patterns",
        slug="nextjs",
        description="Next.js-specific best practices",
        content=(
            "Next.js guidelines:\n"
            "- Follow App Router conventions (layout, page, loading)\n"
            "- Prefer Server Components for data fetching\n"
            "- Add 'use client' only where interactivity needs it"
        ),
        triggers=["next", "nextjs", "app router", "server component", "api route"],
    ),
    "tailwind": Skill(
        id="tech-tailwind",
        name="Tailwind CSS",
        slug="tailwind",
        description="Tailwind CSS patterns",
        content=(
            "Tailwind CSS guidelines:\n"
            "- Use utility classes consistently, mobile first (sm:, md:, lg:)\n"
            "- Prefer utilities over custom CSS"
        ),
        triggers=["tailwind", "classname", "utility class", "responsive"],
    ),
    "typescript": Skill(
        id="tech-typescript",
        name="TypeScript",
        slug="typescript",
        description="TypeScript best practices",
        content=(
            "TypeScript guidelines:\n"
            "- Type every data structure; avoid `any`\n"
            "- Export types shared across files"
        ),
        triggers=["typescript", "type", "interface", "generic"],
    ),
    "python": Skill(
        id="tech-python",
        name="Python",
        slug="python",
        description="Python best practices",
        content=(
            "Python guidelines:\n"
            "- Follow the project's formatter and import order\n"
            "- Match the existing type-hint coverage"
        ),
        triggers=["python", "django", "flask", "fastapi", "pip"],
    ),
}
