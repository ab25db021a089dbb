from __future__ import annotations

import asyncio
import logging
import threading
from tkinter import filedialog

import customtkinter as ctk

from relay_console.config import ConfigurationError
from relay_console.logging_utils import configure_logging
from relay_console.models import DialogTab, GuardPhase, ImportOutcome, OAuthPhase
from relay_console.services import ConsoleService, build_service
from relay_console.ui.shell import LoginForm, ShellView, choose_login_form, choose_view

logger = logging.getLogger(__name__)

TAB_NAMES = {
	DialogTab.OAUTH: "OAuth",
	DialogTab.TOKEN: "Refresh Token",
	DialogTab.IMPORT: "Import",
}


class EventLoopThread:
	"""Runs the asyncio core on one dedicated thread."""

	def __init__(self):
		self._loop = asyncio.new_event_loop()
		self._thread = threading.Thread(target=self._run, name="relay-console-loop", daemon=True)

	def _run(self):
		asyncio.set_event_loop(self._loop)
		self._loop.run_forever()

	def start(self):
		self._thread.start()

	def submit(self, coro):
		return asyncio.run_coroutine_threadsafe(coro, self._loop)

	def stop(self):
		self._loop.call_soon_threadsafe(self._loop.stop)


class MainWindow(ctk.CTk):
	def __init__(self, service: ConsoleService, loop: EventLoopThread):
		super().__init__()
		self._service = service
		self._loop = loop
		self._accounts: list[dict[str, object]] = []
		self.title("Relay Console")
		self.geometry("960x680")
		self.minsize(720, 520)

		self._status_label = ctk.CTkLabel(self, text="Connecting...")
		self._status_label.pack(anchor="w", padx=16, pady=(16, 8))

		self._container = ctk.CTkFrame(self)
		self._container.pack(fill="both", expand=True, padx=16, pady=(0, 16))

		self._unsubscribe = service.guard.subscribe(
			lambda phase, state: self.after(0, self._render)
		)
		self.protocol("WM_DELETE_WINDOW", self._on_close)

		self._render()
		self._run_in_background(self._startup(), on_success=lambda _: None)

	async def _startup(self):
		await self._service.system.show_main_window()
		if not self._service.dispatcher.is_native:
			ready = await self._service.system.wait_until_ready(self._service.settings.ready_timeout_seconds)
			if not ready:
				logger.warning("Backend did not report healthy within %.1fs", self._service.settings.ready_timeout_seconds)
		return await self._service.guard.mount()

	def _run_in_background(self, coro, on_success=None, on_error=None):
		future = self._loop.submit(coro)

		def done(completed):
			try:
				result = completed.result()
			except Exception as exc:
				logger.warning("Background task failed: %s", exc)
				handler = on_error or self._show_error
				self.after(0, lambda: handler(exc))
				return
			if on_success:
				self.after(0, lambda: on_success(result))

		future.add_done_callback(done)

	def _show_error(self, exc: Exception):
		self._status_label.configure(text=f"{type(exc).__name__}: {exc}")

	def _clear_container(self):
		for child in self._container.winfo_children():
			child.destroy()

	def _render(self):
		self._clear_container()
		state = self._service.guard.state
		view = choose_view(state)

		if view is ShellView.PLACEHOLDER:
			self._status_label.configure(text="Loading...")
			ctk.CTkLabel(self._container, text="Loading...").pack(expand=True)
			return

		if view is ShellView.LOGIN:
			self._render_login()
			return

		self._status_label.configure(text=f"Connected via {self._service.dispatcher.transport_name}")
		self._render_protected()
		self._run_in_background(self._service.initialize_data(), on_success=self._apply_initial_data)

	def _render_login(self):
		guard = self._service.guard
		form = choose_login_form(guard.phase)

		if form is LoginForm.RETRY:
			self._status_label.configure(text="Backend unavailable")
			ctk.CTkLabel(self._container, text=guard.state.error or "", text_color="#d14343").pack(anchor="w", padx=24, pady=(24, 6))
			ctk.CTkButton(
				self._container,
				text="Retry",
				command=lambda: self._run_in_background(guard.check_status()),
			).pack(anchor="w", padx=24, pady=8)
			return

		setup_mode = form is LoginForm.SETUP
		self._status_label.configure(text="Create an admin password" if setup_mode else "Sign in")

		password = ctk.CTkEntry(self._container, placeholder_text="Password", show="*")
		password.pack(fill="x", padx=24, pady=(24, 6))

		confirmation = None
		if setup_mode:
			confirmation = ctk.CTkEntry(self._container, placeholder_text="Confirm password", show="*")
			confirmation.pack(fill="x", padx=24, pady=6)

		error_label = ctk.CTkLabel(self._container, text=guard.state.error or "", text_color="#d14343")
		error_label.pack(anchor="w", padx=24, pady=(0, 6))

		def submit():
			if setup_mode:
				coro = guard.setup(password.get(), confirmation.get() if confirmation else None)
			else:
				coro = guard.login(password.get())
			self._run_in_background(coro, on_error=lambda exc: error_label.configure(text=str(exc)))

		label = "Set password" if setup_mode else "Sign in"
		ctk.CTkButton(self._container, text=label, command=submit).pack(anchor="w", padx=24, pady=8)

	def _render_protected(self):
		action_row = ctk.CTkFrame(self._container)
		action_row.pack(fill="x", padx=8, pady=8)

		ctk.CTkButton(action_row, text="Add account", command=self._open_add_dialog).pack(side="left", padx=(8, 6), pady=8)
		ctk.CTkButton(action_row, text="Refresh quotas", command=self._refresh_quotas).pack(side="left", padx=6, pady=8)
		ctk.CTkButton(action_row, text="Sign out", command=self._sign_out).pack(side="right", padx=8, pady=8)

		self._accounts_box = ctk.CTkTextbox(self._container)
		self._accounts_box.pack(fill="both", expand=True, padx=8, pady=(0, 8))
		self._render_accounts()

	def _render_accounts(self):
		box = getattr(self, "_accounts_box", None)
		if box is None or not box.winfo_exists():
			return
		box.configure(state="normal")
		box.delete("1.0", "end")
		if not self._accounts:
			box.insert("1.0", "No accounts yet.")
		else:
			lines = [str(account.get("email") or account.get("id") or "?") for account in self._accounts]
			box.insert("1.0", "\n".join(lines))
		box.configure(state="disabled")

	def _apply_initial_data(self, loaded):
		self._accounts = list(loaded.get("accounts") or [])
		self._render_accounts()

	def _apply_accounts(self, accounts):
		self._accounts = list(accounts or [])
		self._render_accounts()

	def _refresh_quotas(self):
		self._status_label.configure(text="Refreshing quotas...")
		self._run_in_background(
			self._service.refresh_accounts_and_quotas(),
			on_success=lambda accounts: (
				self._apply_accounts(accounts),
				self._status_label.configure(text="Quotas refreshed"),
			),
		)

	def _reload_accounts(self):
		self._run_in_background(self._service.accounts.list_accounts(), on_success=self._apply_accounts)

	def _sign_out(self):
		self._run_in_background(self._service.guard.logout())

	def _open_add_dialog(self):
		AddAccountDialog(self, self._service, self._loop, on_changed=self._reload_accounts)

	def _on_close(self):
		self._unsubscribe()
		self._loop.stop()
		self.destroy()


class AddAccountDialog(ctk.CTkToplevel):
	def __init__(self, master: MainWindow, service: ConsoleService, loop: EventLoopThread, on_changed):
		super().__init__(master)
		self._master = master
		self._service = service
		self._loop = loop
		self._on_changed = on_changed
		self._flow = service.new_oauth_flow()
		self._importer = service.new_importer()
		self.title("Add account")
		self.geometry("640x460")

		self._tabview = ctk.CTkTabview(self, command=self._on_tab_changed)
		self._tabview.pack(fill="both", expand=True, padx=12, pady=(12, 6))
		for name in TAB_NAMES.values():
			self._tabview.add(name)

		oauth_tab = self._tabview.tab(TAB_NAMES[DialogTab.OAUTH])
		self._url_entry = ctk.CTkEntry(oauth_tab, placeholder_text="Authorization link")
		self._url_entry.pack(fill="x", padx=12, pady=(12, 6))
		oauth_row = ctk.CTkFrame(oauth_tab)
		oauth_row.pack(fill="x", padx=12, pady=6)
		ctk.CTkButton(oauth_row, text="Start OAuth", command=lambda: self._run(self._flow.start())).pack(side="left", padx=6)
		ctk.CTkButton(oauth_row, text="I finished in my browser", command=self._finish).pack(side="left", padx=6)
		self._code_entry = ctk.CTkEntry(oauth_tab, placeholder_text="Paste the authorization code or redirect URL")
		self._code_entry.pack(fill="x", padx=12, pady=6)
		ctk.CTkButton(oauth_tab, text="Submit code", command=self._submit_code).pack(anchor="w", padx=12, pady=6)

		token_tab = self._tabview.tab(TAB_NAMES[DialogTab.TOKEN])
		self._token_box = ctk.CTkTextbox(token_tab, height=180)
		self._token_box.pack(fill="both", expand=True, padx=12, pady=(12, 6))
		ctk.CTkButton(token_tab, text="Add", command=self._import_text).pack(anchor="w", padx=12, pady=6)

		import_tab = self._tabview.tab(TAB_NAMES[DialogTab.IMPORT])
		ctk.CTkButton(import_tab, text="Import JSON file...", command=self._import_file).pack(anchor="w", padx=12, pady=12)

		self._message_label = ctk.CTkLabel(self, text="", wraplength=600, justify="left")
		self._message_label.pack(anchor="w", padx=12, pady=(0, 12))

		self.protocol("WM_DELETE_WINDOW", self._close)
		self._run(self._flow.open_dialog(DialogTab.OAUTH))
		self._sync_oauth_state()

	def _run(self, coro, on_success=None):
		self._master._run_in_background(
			coro,
			on_success=on_success,
			on_error=lambda exc: self._message_label.configure(text=str(exc)),
		)

	def _sync_oauth_state(self):
		if not self.winfo_exists():
			return
		session = self._flow.session
		if session is not None:
			url = session.authorization_url or ""
			if self._url_entry.get() != url:
				self._url_entry.delete(0, "end")
				self._url_entry.insert(0, url)
			if self._tabview.get() == TAB_NAMES[DialogTab.OAUTH] and session.message:
				self._message_label.configure(text=session.message)
			if session.phase is OAuthPhase.SUCCEEDED:
				self._on_changed()
				self.after(1500, self._close)
				return
		self.after(300, self._sync_oauth_state)

	def _on_tab_changed(self):
		selected = self._tabview.get()
		tab = next(key for key, name in TAB_NAMES.items() if name == selected)
		self._message_label.configure(text="")
		self._run(self._flow.select_tab(tab))

	def _finish(self):
		# Over the network the backend cannot see the browser, so hand over the pasted code.
		pasted = None if self._service.dispatcher.is_native else self._code_entry.get()
		self._run(self._flow.finish(pasted))

	def _submit_code(self):
		self._run(self._flow.submit_code(self._code_entry.get()))

	def _show_progress(self, current: int, total: int):
		self.after(0, lambda: self._message_label.configure(text=f"Adding {current}/{total}..."))

	def _show_import_result(self, result):
		self._message_label.configure(text=result.summary)
		if result.outcome is not ImportOutcome.FAILURE:
			self._on_changed()
		if result.outcome is ImportOutcome.SUCCESS:
			self.after(1500, self._close)

	def _import_text(self):
		raw = self._token_box.get("1.0", "end")
		self._run(self._importer.import_text(raw, self._show_progress), on_success=self._show_import_result)

	def _import_file(self):
		path = filedialog.askopenfilename(filetypes=[("JSON", "*.json"), ("All files", "*")])
		if not path:
			return
		self._run(self._importer.import_path(path, self._show_progress), on_success=self._show_import_result)

	def _close(self):
		if not self.winfo_exists():
			return
		self._run(self._flow.close_dialog())
		self.destroy()


def run_app() -> None:
	configure_logging()
	ctk.set_appearance_mode("System")
	ctk.set_default_color_theme("blue")

	try:
		service = build_service()
	except ConfigurationError as exc:
		app = ctk.CTk()
		app.title("Relay Console - Configuration Error")
		app.geometry("760x360")
		message = ctk.CTkTextbox(app)
		message.pack(fill="both", expand=True, padx=16, pady=16)
		message.insert(
			"1.0",
			"Configuration error. Fix the environment variables and restart:\n\n"
			f"{exc}\n\n"
			"See RELAY_BASE_URL, RELAY_TRANSPORT and RELAY_TIMEOUT_SECONDS.\n",
		)
		app.mainloop()
		return

	loop = EventLoopThread()
	loop.start()
	window = MainWindow(service, loop)
	window.mainloop()
